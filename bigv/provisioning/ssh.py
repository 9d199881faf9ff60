"""SSH readiness polling for freshly imaged machines."""

import logging

import asyncssh

from bigv.provisioning.polling import Clock, poll_until

logger = logging.getLogger(__name__)

SSH_CONNECT_TIMEOUT = 10


async def ssh_handshake(host, password, username="root", port=22):
    """Try one SSH login and close straight away.

    Returns:
        True on a successful login, False if the machine is not ready yet.
    """
    try:
        async with asyncssh.connect(
            host,
            port=port,
            username=username,
            password=password,
            known_hosts=None,
            client_keys=None,
            connect_timeout=SSH_CONNECT_TIMEOUT,
        ):
            return True
    except ConnectionRefusedError:
        logger.debug(f"SSH to {host}:{port} refused, not up yet")
        return False
    except (OSError, asyncssh.Error) as e:
        # First boot is noisy: resets, half-started sshd, password not set yet.
        logger.warning(f"SSH to {host}:{port} failed: {e}")
        return False


async def wait_for_ssh(host, password, username="root", port=22, timeout=1200, interval=5, clock=None, handshake=ssh_handshake):
    """Poll SSH logins until one succeeds.

    Returns:
        Number of attempts made.

    Raises:
        ProvisioningTimeout: no login succeeded before *timeout*.
    """
    clock = clock or Clock()
    logger.info(f"Waiting for SSH on {username}@{host}:{port} (timeout: {timeout}s)...")

    async def _check():
        return await handshake(host, password, username=username, port=port)

    return await poll_until(
        _check,
        clock=clock,
        interval=interval,
        timeout=timeout,
        description=f"SSH on {host}:{port}",
        resource=host,
    )
