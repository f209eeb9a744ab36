#!/usr/bin/env python3
"""
setup.py
- First-boot setup for the Homarr dashboard.
- Rotates the bootstrap API key into a permanent one, completes onboarding,
  applies the branded board, pushes federated login settings, then marks first boot complete.
- Safe to re-run at any point: every pass re-evaluates from saved state plus live dashboard state.
"""

from dataclasses import dataclass

from loguru import logger

from core import constants as c
from core.branding import federated_settings, load_branding
from core.errors import AdapterError, SetupError
from core.state import load_state
from lib.bootstrap.bootstrap_steps import (
    next_action,
    perform_board_setup,
    perform_completion,
    perform_credential_sync,
    perform_onboarding,
    perform_revocation,
    perform_rotation,
    probe,
)
from lib.homarr.homarr_client import HomarrClient


@dataclass
class SetupReport:
    completed: bool
    step: str
    error: str = None


def bootstrap_dashboard(config, client=None):
    """
    Drive the bootstrap state machine to completion.

    Returns:
        str: The final step reached (STEP_DONE on success).

    Raises:
        AdapterError: On the first step that fails; state saved by earlier steps is kept.
    """
    branding = load_branding(config.branding_file)
    federated = federated_settings(branding)
    state = load_state(config.state_file)

    client = client or HomarrClient.from_config(config)
    if state.permanent_credential:
        client.credential = state.permanent_credential

    status = None
    for _ in range(c.MAX_SETUP_ITERATIONS):
        step = next_action(state, status, federated)
        logger.debug(f"[setup] Next step: {step}")

        if step == c.STEP_DONE:
            return step
        try:
            if step == c.STEP_ROTATE:
                perform_rotation(client, state, branding, config.state_file)
            elif step == c.STEP_REVOKE_BOOTSTRAP:
                perform_revocation(client, state, branding, config.state_file)
            elif step == c.STEP_PROBE:
                status = probe(client, branding)
            elif step == c.STEP_ONBOARD:
                perform_onboarding(client, branding)
                status = None
            elif step == c.STEP_SETUP_BOARD:
                perform_board_setup(client, state, branding, config.state_file)
                status = None
            elif step == c.STEP_SYNC_CREDENTIALS:
                perform_credential_sync(client, state, branding, config.state_file)
            elif step == c.STEP_COMPLETE:
                perform_completion(state, config.state_file)
        except AdapterError as e:
            e.step = step
            raise

    raise SetupError(f"Setup did not converge after {c.MAX_SETUP_ITERATIONS} steps")


def run_setup(config, client=None):
    """
    Run first-boot setup and report how far it got.

    Returns:
        SetupReport: completed flag, step reached, and the error message on failure.
    """
    logger.info("[setup] Starting first-boot setup...")
    try:
        step = bootstrap_dashboard(config, client=client)
    except AdapterError as e:
        step = getattr(e, "step", "load")
        logger.error(f"[setup] Setup failed at step '{step}': {e}")
        return SetupReport(completed=False, step=step, error=str(e))

    logger.info("[setup] Dashboard is bootstrapped.")
    return SetupReport(completed=True, step=step)
