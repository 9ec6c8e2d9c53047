"""
Self-signed certificate generation with openssl.
"""

import tempfile
from pathlib import Path

from ..executor import ProcessHandle
from ..utils import get_logger, log_performance

logger = get_logger(__name__)


@log_performance(logger)
async def create_self_signed_cert(
    common_name: str = "srs.stack.local",
    days: int = 3650,
    openssl: str = "openssl",
) -> tuple[str, str]:
    """
    Create an EC P-256 key and a self-signed server certificate.

    Args:
        common_name: Certificate subject CN
        days: Validity in days
        openssl: Path to openssl executable

    Returns:
        Tuple of (key PEM, certificate PEM)

    Raises:
        LaunchError: If openssl cannot be started
        ProcessExitError: If openssl fails
    """
    with tempfile.TemporaryDirectory(prefix="stream-e2e-cert-") as tmp:
        key_file = Path(tmp) / "server.key"
        crt_file = Path(tmp) / "server.crt"
        command = [
            openssl,
            "req",
            "-x509",
            "-newkey",
            "ec",
            "-pkeyopt",
            "ec_paramgen_curve:prime256v1",
            "-nodes",
            "-keyout",
            str(key_file),
            "-out",
            str(crt_file),
            "-days",
            str(days),
            "-subj",
            f"/CN={common_name}",
            "-addext",
            "keyUsage=digitalSignature,keyEncipherment",
            "-addext",
            "extendedKeyUsage=serverAuth",
        ]

        async with ProcessHandle(command) as process:
            status = await process.wait()
        process.check(status)

        key = key_file.read_text()
        crt = crt_file.read_text()

    logger.info(
        f"Created self-signed certificate for {common_name}, key={len(key)}B, crt={len(crt)}B"
    )
    return key, crt
