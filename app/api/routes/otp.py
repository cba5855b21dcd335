from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_session, rate_limit
from app.api.schemas.otp import OtpSendRequest, OtpSendResponse, OtpVerifyRequest, OtpVerifyResponse
from app.services import verification_service
from app.services.sms_service import send_otp

router = APIRouter(prefix="/otp", tags=["otp"])


@router.post(
    "/send",
    response_model=OtpSendResponse,
    dependencies=[Depends(rate_limit("otp-send", "rate_limit_otp_send"))],
)
async def send_code(
    body: OtpSendRequest,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
) -> OtpSendResponse:
    record = await verification_service.issue_code(session, body.phone, body.method)
    # Delivery is fire-and-forget; the response does not wait on the provider
    background_tasks.add_task(send_otp, record.phone, record.otp_code, record.method)
    return OtpSendResponse(message="Verification code sent", method=record.method)


@router.post(
    "/verify",
    response_model=OtpVerifyResponse,
    dependencies=[Depends(rate_limit("otp-verify", "rate_limit_otp_verify"))],
)
async def verify_code(
    body: OtpVerifyRequest,
    session: AsyncSession = Depends(get_session),
) -> OtpVerifyResponse:
    await verification_service.verify_code(session, body.phone, body.code)
    return OtpVerifyResponse(verified=True, message="Phone verified")
