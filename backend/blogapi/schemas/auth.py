from pydantic import BaseModel, Field, validator


LOGIN_PATTERN = r"^[a-zA-Z0-9_-]*$"
EMAIL_PATTERN = r"^[\w\-.]+@([\w-]+\.)+[\w-]{2,4}$"


def _strip(v):
    if isinstance(v, str):
        return v.strip()
    return v


class LoginRequest(BaseModel):
    loginOrEmail: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)

    @validator("loginOrEmail", "password", pre=True)
    def strip_fields(cls, v):
        return _strip(v)


class LoginResponse(BaseModel):
    accessToken: str


class MeResponse(BaseModel):
    userId: str
    login: str
    email: str


class RegistrationRequest(BaseModel):
    login: str = Field(..., min_length=3, max_length=10, pattern=LOGIN_PATTERN)
    password: str = Field(..., min_length=6, max_length=20)
    email: str = Field(..., pattern=EMAIL_PATTERN)

    @validator("login", "password", "email", pre=True)
    def strip_fields(cls, v):
        return _strip(v)


class ConfirmationRequest(BaseModel):
    code: str = Field(..., min_length=1)

    @validator("code", pre=True)
    def strip_code(cls, v):
        return _strip(v)


class EmailRequest(BaseModel):
    email: str = Field(..., pattern=EMAIL_PATTERN)

    @validator("email", pre=True)
    def strip_email(cls, v):
        return _strip(v)


class NewPasswordRequest(BaseModel):
    newPassword: str = Field(..., min_length=6, max_length=20)
    recoveryCode: str = Field(..., min_length=1)

    @validator("newPassword", "recoveryCode", pre=True)
    def strip_fields(cls, v):
        return _strip(v)


class DeviceView(BaseModel):
    ip: str
    title: str
    lastActiveDate: str
    deviceId: str


class UserView(BaseModel):
    id: str
    login: str
    email: str
    createdAt: str
