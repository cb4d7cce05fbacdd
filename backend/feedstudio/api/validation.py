"""
Shared validation utilities for API endpoints.
"""

import re
from typing import Optional

from fastapi import HTTPException, Query

MAX_DB_INT = 2147483647

JOB_ID_PATTERN = re.compile(r"^job_[0-9a-f]{12}$")


def validate_positive_int(
    value: Optional[int], param_name: str = "parameter"
) -> Optional[int]:
    """
    Validate that an integer path parameter is a usable database id.

    Raises:
        HTTPException: If validation fails
    """
    if value is not None:
        if value < 1:
            raise HTTPException(
                status_code=400, detail=f"Invalid {param_name}: must be positive"
            )
        if value > MAX_DB_INT:
            raise HTTPException(
                status_code=400, detail=f"Invalid {param_name}: value too large"
            )
    return value


def validate_job_id(job_id: str) -> str:
    if not JOB_ID_PATTERN.match(job_id):
        raise HTTPException(status_code=400, detail="Invalid job_id format")
    return job_id


# Query parameter dependencies for common validations
UserIdParam = Query(..., ge=1, le=MAX_DB_INT, description="Owner of the feeds")
LimitParam = Query(100, ge=1, le=1000, description="Maximum items to return")
SkipParam = Query(0, ge=0, le=100000, description="Number of items to skip")
