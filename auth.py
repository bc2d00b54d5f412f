from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from bson import ObjectId
from fastapi import Header

import config
from errors import Unauthorized
from geo import to_object_id


def issue_token(user_id, expires_in: timedelta = timedelta(days=7)) -> str:
    payload = {"id": str(user_id), "exp": datetime.now(timezone.utc) + expires_in}
    return jwt.encode(payload, config.jwt_secret(), algorithm=config.JWT_ALGORITHM)


async def get_current_user_id(authorization: Optional[str] = Header(None)) -> ObjectId:
    if not authorization or not authorization.startswith("Bearer "):
        raise Unauthorized("Authorization token missing")
    token = authorization[len("Bearer "):]
    try:
        payload = jwt.decode(token, config.jwt_secret(), algorithms=[config.JWT_ALGORITHM])
    except jwt.PyJWTError as e:
        raise Unauthorized("Unauthorized", data=str(e))
    user_id = to_object_id(payload.get("id"))
    if user_id is None:
        raise Unauthorized("Invalid token")
    return user_id
