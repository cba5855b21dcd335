from pydantic import BaseModel


class OtpSendRequest(BaseModel):
    phone: str | None = None
    method: str = "sms"  # sms | call


class OtpSendResponse(BaseModel):
    message: str
    method: str


class OtpVerifyRequest(BaseModel):
    phone: str | None = None
    code: str | None = None


class OtpVerifyResponse(BaseModel):
    verified: bool
    message: str
