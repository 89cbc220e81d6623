# app/routers/auth_routes.py

from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import OAuth2PasswordRequestForm
from sqlmodel import Session

from app.db import get_session
from app.schemas import Token
from app.auth import authenticate, create_access_token

router = APIRouter(
    prefix="/auth",
    tags=["auth"],
)


@router.post("/login", response_model=Token)
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    session: Session = Depends(get_session),
):
    # 1) Credentials (the form's username field carries the email)
    user = authenticate(session, form_data.username, form_data.password)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid credentials")

    # 2) Rejected registrations never get a token; pending and suspended
    # accounts may log in and are stopped at booking time
    if user.status == "rejected":
        raise HTTPException(status_code=403, detail="Account registration was rejected")

    # 3) Issue token
    token = create_access_token({"sub": user.email, "role": user.role})
    return {"access_token": token, "token_type": "bearer"}
