"""Complaints about trip operators, with optional attachments."""

import time
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

from pydantic import TypeAdapter

from wanderlust.models.complaint import Attachment, Company, Complaint, ComplaintForm
from wanderlust.models.result import Err, ErrorKind, Ok, Result
from wanderlust.services.supabase_client import SupabaseClient, SupabaseError
from wanderlust.utils.logger import get_logger

logger = get_logger(__name__)

_DATETIME = TypeAdapter(datetime)

COMPANIES_COLUMNS = """
    id,
    trip_schedules!inner (
        date,
        base_trips!inner (
            company_id,
            companies (
                id,
                name,
                email
            )
        )
    )
"""


def _each(value: Any) -> Iterator[dict]:
    # Embedded relations come back as an object or a list depending on cardinality
    if isinstance(value, list):
        yield from (v for v in value if v)
    elif value:
        yield value


def _parse_date(value: Any) -> Optional[datetime]:
    if not value:
        return None
    parsed = _DATETIME.validate_python(value)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class ComplaintService:
    def __init__(self, client: SupabaseClient, bucket: str = "complaints_attachments"):
        self.client = client
        self.bucket = bucket

    async def list_complaint_companies(
        self, user_id: str, today: Optional[datetime] = None
    ) -> list[Company]:
        """
        Companies the user travelled with on trips that already happened.

        Unique by id, in the order they first appear in the user's bookings.
        """
        today = today or datetime.now(timezone.utc)
        if today.tzinfo is None:
            today = today.replace(tzinfo=timezone.utc)

        rows = await self.client.select(
            "bookings", columns=COMPANIES_COLUMNS, filters={"user_id": user_id}
        )

        companies: list[Company] = []
        seen: set[str] = set()
        for booking in rows:
            schedules = list(_each(booking.get("trip_schedules")))
            if not any((_parse_date(s.get("date")) or today) < today for s in schedules):
                continue
            for schedule in schedules:
                for trip in _each(schedule.get("base_trips")):
                    for row in _each(trip.get("companies")):
                        company = Company.model_validate(row)
                        if company.id not in seen:
                            seen.add(company.id)
                            companies.append(company)

        logger.debug("complaint_companies_loaded", bookings=len(rows), companies=len(companies))
        return companies

    async def upload_attachment(self, attachment: Optional[Attachment]) -> Optional[str]:
        """Upload to the attachments bucket. Returns the public URL, or None."""
        if attachment is None:
            return None

        path = f"{int(time.time() * 1000)}.{attachment.extension}"
        try:
            await self.client.upload(
                self.bucket, path, attachment.content, attachment.content_type
            )
        except SupabaseError as e:
            logger.error("attachment_upload_failed", path=path, error=str(e))
            return None
        return self.client.get_public_url(self.bucket, path)

    async def submit_complaint(
        self,
        user_id: Optional[str],
        company: Optional[Company],
        form: ComplaintForm,
        attachment: Optional[Attachment] = None,
    ) -> Result:
        if not user_id:
            return Err(ErrorKind.AUTH, "Login required")
        if company is None:
            return Err(ErrorKind.VALIDATION, "Please select a company.")

        complaint = Complaint(
            user_id=user_id,
            company_id=company.id,
            complaint_type=form.complaint_type,
            subject=form.subject,
            message=form.message,
            email_to=company.email,
            attachment_url=await self.upload_attachment(attachment),
        )

        try:
            await self.client.insert("complaints", complaint.model_dump())
        except SupabaseError as e:
            logger.error("complaint_submit_failed", company_id=company.id, error=str(e))
            return Err(ErrorKind.NETWORK, "Failed to send complaint.")

        logger.info(
            "complaint_submitted",
            company_id=company.id,
            has_attachment=complaint.attachment_url is not None,
        )
        return Ok(complaint)
