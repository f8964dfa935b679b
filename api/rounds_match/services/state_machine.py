BUCKET_PENDING = "pending"
BUCKET_SCORING = "scoring"
BUCKET_FORMING = "forming"
BUCKET_FORMED = "formed"
BUCKET_INSUFFICIENT_POOL = "insufficient_pool"

RUN_PENDING = "pending"
RUN_COMPLETED = "completed"
RUN_INSUFFICIENT_POOL = "insufficient_pool"
RUN_FAILED = "failed"

TERMINAL_RUN_STATUSES = {RUN_COMPLETED, RUN_INSUFFICIENT_POOL, RUN_FAILED}


def transition_bucket(current: str, action: str) -> str:
    if current in {BUCKET_FORMED, BUCKET_INSUFFICIENT_POOL}:
        raise ValueError(f"Bucket already terminal ({current}); cannot apply {action}")

    if action == "start":
        if current == BUCKET_PENDING:
            return BUCKET_SCORING

    if action == "too_small":
        if current in {BUCKET_PENDING, BUCKET_SCORING}:
            return BUCKET_INSUFFICIENT_POOL

    if action == "scored":
        if current == BUCKET_SCORING:
            return BUCKET_FORMING

    if action == "formed":
        if current == BUCKET_FORMING:
            return BUCKET_FORMED

    raise ValueError(f"Invalid bucket transition: {current} --{action}-->")


def terminal_run_status(eligible_count: int, group_count: int) -> str:
    if eligible_count <= 0 or group_count <= 0:
        return RUN_INSUFFICIENT_POOL
    return RUN_COMPLETED
