"""
External timestamping for evidence artifacts.

Timestamping strengthens evidence but is never a precondition for having it:
``submit_timestamp`` and ``verify_timestamp`` both run under a bounded timeout
and collapse every failure (network errors, TSA errors, malformed proofs,
timeouts) into an absent proof or ``False``. Nothing raised here reaches the
caller.

Two backends are supported, selected by TIMESTAMP_BACKEND:

    simulated  Waits a fixed delay and issues the current UTC time as an
               ISO-8601 proof string. No external service is contacted.
    rfc3161    Requests an RFC 3161 token for the SHA-256 digest from the
               TSA_URLS in order. The proof is ``rfc3161:<base64 token>``.

Example usage:
    from core.timestamp import submit_timestamp, verify_timestamp

    result = await submit_timestamp(content, digest=file_hash)
    if result.success:
        ok = await verify_timestamp(result.proof, digest=file_hash)
"""

import asyncio
import base64
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

import rfc3161ng

from core import config
from core.hashing import compute_digest
from core.logging import get_logger

logger = get_logger(__name__)

RFC3161_PREFIX = "rfc3161:"


@dataclass
class TimestampResult:
    """Outcome of a timestamp submission."""
    success: bool
    proof: Optional[str] = None
    backend: Optional[str] = None
    submitted_at: Optional[datetime] = None
    errors: List[str] = field(default_factory=list)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _generate_rfc3161_token(digest: str) -> Optional[bytes]:
    """
    Obtain an RFC 3161 timestamp token for a SHA-256 digest.

    Tries each configured TSA in turn and returns the first token, or None
    when every TSA failed.
    """
    data_hash = bytes.fromhex(digest)

    for tsa_url in config.TSA_URLS:
        try:
            logger.debug(f"Attempting TSA request to {tsa_url}")
            rt = rfc3161ng.RemoteTimestamper(
                tsa_url,
                hashname="sha256",
                include_tsa_certificate=True,
                timeout=config.TIMESTAMP_TIMEOUT_S,
            )
            token = rt.timestamp(digest=data_hash)
            if token:
                logger.info(f"Obtained timestamp from {tsa_url}")
                return token
        except Exception as e:
            logger.warning(f"TSA {tsa_url} failed: {e}")

    logger.warning("All TSA URLs failed")
    return None


def _check_rfc3161_token(token: bytes, digest: Optional[str]) -> bool:
    kwargs = {"hashname": "sha256"}
    if digest:
        kwargs["digest"] = bytes.fromhex(digest)
    return bool(rfc3161ng.check_timestamp(token, **kwargs))


def _check_simulated_proof(proof: str, now: datetime) -> bool:
    issued = datetime.fromisoformat(proof.replace("Z", "+00:00"))
    if issued.tzinfo is None:
        issued = issued.replace(tzinfo=timezone.utc)
    return issued <= now + timedelta(seconds=config.TIMESTAMP_CLOCK_SKEW_S)


async def _request_proof(backend: str, digest: str, now_provider: Callable[[], datetime]) -> Optional[str]:
    if backend == "simulated":
        await asyncio.sleep(config.TIMESTAMP_SIMULATED_DELAY_S)
        return now_provider().isoformat()

    if backend == "rfc3161":
        token = await asyncio.to_thread(_generate_rfc3161_token, digest)
        if not token:
            return None
        return RFC3161_PREFIX + base64.b64encode(token).decode("ascii")

    raise ValueError(f"Unknown timestamp backend '{backend}'")


async def submit_timestamp(
    content: bytes,
    digest: Optional[str] = None,
    timeout: Optional[float] = None,
    backend: Optional[str] = None,
    now_provider: Optional[Callable[[], datetime]] = None
) -> TimestampResult:
    """
    Best-effort request for an external timestamp proof.

    Args:
        content: Artifact bytes (only hashed when ``digest`` is not given)
        digest: Precomputed SHA-256 hex digest of ``content``
        timeout: Upper bound in seconds; TIMESTAMP_TIMEOUT_S when None
        backend: "simulated" or "rfc3161"; TIMESTAMP_BACKEND when None
        now_provider: Optional clock for deterministic tests

    Returns:
        TimestampResult; ``success`` is False and ``proof`` None on any failure
    """
    backend = (backend or config.TIMESTAMP_BACKEND).lower()
    timeout = config.TIMESTAMP_TIMEOUT_S if timeout is None else timeout
    now_provider = now_provider or _utcnow
    digest = digest or compute_digest(content)

    try:
        proof = await asyncio.wait_for(_request_proof(backend, digest, now_provider), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(
            "Timestamp submission timed out",
            extra={"backend": backend, "file_hash": digest, "timeout_s": timeout},
        )
        return TimestampResult(success=False, backend=backend, errors=[f"Timestamp authority timed out after {timeout}s"])
    except Exception as e:
        logger.warning(
            f"Timestamp submission failed: {e}",
            extra={"backend": backend, "file_hash": digest},
            exc_info=True,
        )
        return TimestampResult(success=False, backend=backend, errors=[str(e) or type(e).__name__])

    if not proof:
        logger.warning("Timestamp authority returned no proof", extra={"backend": backend, "file_hash": digest})
        return TimestampResult(success=False, backend=backend, errors=["Timestamp authority unavailable"])

    return TimestampResult(success=True, proof=proof, backend=backend, submitted_at=now_provider())


async def verify_timestamp(
    proof: Optional[str],
    digest: Optional[str] = None,
    timeout: Optional[float] = None,
    now_provider: Optional[Callable[[], datetime]] = None
) -> bool:
    """
    Re-validate a stored timestamp proof.

    Never raises: empty or malformed proofs, verification errors and
    timeouts all return False.

    Args:
        proof: Proof string as stored on the evidence item
        digest: SHA-256 hex digest the proof should cover (rfc3161 only)
        timeout: Upper bound in seconds; TIMESTAMP_TIMEOUT_S when None
        now_provider: Optional clock for deterministic tests
    """
    if not isinstance(proof, str) or not proof.strip():
        return False

    proof = proof.strip()
    timeout = config.TIMESTAMP_TIMEOUT_S if timeout is None else timeout
    now_provider = now_provider or _utcnow

    try:
        if proof.startswith(RFC3161_PREFIX):
            token = base64.b64decode(proof[len(RFC3161_PREFIX):], validate=True)
            return await asyncio.wait_for(
                asyncio.to_thread(_check_rfc3161_token, token, digest), timeout=timeout
            )
        return _check_simulated_proof(proof, now_provider())
    except asyncio.TimeoutError:
        logger.warning("Timestamp verification timed out", extra={"timeout_s": timeout})
        return False
    except Exception as e:
        logger.warning(f"Timestamp verification failed: {e}")
        return False
