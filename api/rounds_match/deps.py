import hmac

from fastapi import HTTPException

DEV_ADMIN_TOKEN = "dev-admin-token"


def validate_admin_token(token: str | None, admin_token: str | None, *, dev_mode: bool = False) -> None:
    # Local/dev token only when no explicit ADMIN_TOKEN is configured.
    expected = admin_token or (DEV_ADMIN_TOKEN if dev_mode else "")
    if not expected or not token or not hmac.compare_digest(token, expected):
        raise HTTPException(status_code=401, detail="Invalid admin token")


def validate_cron_secret(authorization: str | None, secret: str | None) -> None:
    if not secret or not authorization:
        raise HTTPException(status_code=401, detail="Unauthorized")
    scheme, _, value = authorization.partition(" ")
    if scheme.lower() != "bearer" or not hmac.compare_digest(value.strip(), secret):
        raise HTTPException(status_code=401, detail="Unauthorized")
