from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class RegisterRequest(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class RenameRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    new_name: Optional[str] = Field(default=None, alias="newName")


class UserResponse(BaseModel):
    id: int
    username: str
    email: str


class CurrentUserResponse(UserResponse):
    created_at: str


class AuthResponse(BaseModel):
    message: str
    token: str
    user: UserResponse


class FileResponse(BaseModel):
    id: int
    name: str
    size: int
    content_type: Optional[str] = None
    uploaded_at: str


class UploadResponse(BaseModel):
    message: str
    files: list[FileResponse]


class RenameResponse(BaseModel):
    message: str
    file: FileResponse


class MessageResponse(BaseModel):
    message: str
