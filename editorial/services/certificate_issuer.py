import uuid
from typing import Optional, Protocol

import httpx

from editorial.config.settings import settings
from editorial.utils.datetime_utils import utc_now
from editorial.utils.logging import get_logger

logger = get_logger()


class CertificateIssuanceError(Exception):
    """The issuer could not produce a certificate."""


class CertificateIssuer(Protocol):
    async def issue(self, submission_id: str, author_id: str) -> str:
        """Return the new certificate id or raise CertificateIssuanceError."""
        ...


class LocalCertificateIssuer:
    """Mints certificate ids in-process; rendering happens elsewhere."""

    def __init__(self, prefix: str = None):
        self.prefix = prefix or settings.CERTIFICATE_PREFIX

    async def issue(self, submission_id: str, author_id: str) -> str:
        if not submission_id or not author_id:
            raise CertificateIssuanceError("Submission and author are required")
        certificate_id = (
            f"{self.prefix}-{utc_now().strftime('%Y%m%d')}-{uuid.uuid4().hex[:8].upper()}"
        )
        logger.info(f"Issued certificate {certificate_id} for submission {submission_id}")
        return certificate_id


class HttpCertificateIssuer:
    """Calls the external certificate service over HTTP."""

    def __init__(
        self,
        base_url: str,
        timeout: float = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout or settings.CERTIFICATE_ISSUER_TIMEOUT_SECONDS
        self._client = client

    async def issue(self, submission_id: str, author_id: str) -> str:
        payload = {"submissionId": submission_id, "authorId": author_id}
        try:
            if self._client is not None:
                response = await self._client.post(
                    f"{self.base_url}/certificates", json=payload, timeout=self.timeout
                )
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.post(
                        f"{self.base_url}/certificates",
                        json=payload,
                        timeout=self.timeout,
                    )
        except httpx.RequestError as e:
            raise CertificateIssuanceError(
                f"Certificate service unreachable: {e}"
            ) from e

        if response.status_code not in (200, 201):
            raise CertificateIssuanceError(
                f"Certificate service returned {response.status_code} - {response.text}"
            )

        try:
            certificate_id = response.json().get("certificateId")
        except ValueError as e:
            raise CertificateIssuanceError("Certificate service returned invalid JSON") from e
        if not certificate_id:
            raise CertificateIssuanceError("Certificate service returned no certificateId")
        return certificate_id


def get_certificate_issuer() -> CertificateIssuer:
    """Dependency function selecting the configured issuer"""
    if settings.CERTIFICATE_ISSUER_URL:
        return HttpCertificateIssuer(settings.CERTIFICATE_ISSUER_URL)
    return LocalCertificateIssuer()
