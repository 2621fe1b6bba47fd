# vaultrelay/api/users.py

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from vaultrelay.core.user import list_users, register_user
from vaultrelay.infra.database import get_db

router = APIRouter(prefix="/users")


class RegisterUserSchema(BaseModel):
    userId: Optional[str] = None


@router.post("", status_code=201)
def register_user_endpoint(payload: RegisterUserSchema, db: Session = Depends(get_db)):
    user = register_user(db, payload.userId)
    return {"success": True, "message": "User created successfully", "userId": user.id}


@router.get("")
def get_users(db: Session = Depends(get_db)):
    return {"users": list_users(db)}
