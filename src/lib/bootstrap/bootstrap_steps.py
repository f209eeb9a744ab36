"""
bootstrap_steps.py
- First-boot state machine for the Homarr dashboard.
- next_action() is pure: it derives the next step from persisted state plus the last live probe,
  so an interrupted setup resumes from wherever the dashboard actually is.
- The perform_* functions each commit one step and save state before returning.
"""

from dataclasses import dataclass

from loguru import logger

from core import constants as c
from core.branding import bootstrap_credential, federated_settings, require, settings_digest
from core.errors import ConfigError, Conflict
from core.state import save_state
from lib.homarr.homarr_client import credential_ref
from lib.sync.label_utils import AppDescriptor


@dataclass
class DashboardStatus:
    """Result of a live probe. board_id is None when the branded board does not exist yet."""
    onboarding_complete: bool
    board_id: str = None


def next_action(state, status, federated=None):
    """
    Decide the next bootstrap step.

    Args:
        state (AdapterState): Persisted adapter state.
        status (DashboardStatus): Last live probe, or None if not probed during this pass.
        federated (dict): Federated login settings from branding, or None.

    Returns:
        str: One of the STEP_* constants.
    """
    if not state.permanent_credential:
        return c.STEP_ROTATE
    if not state.bootstrap_revoked:
        return c.STEP_REVOKE_BOOTSTRAP
    if state.first_boot_completed:
        return c.STEP_DONE
    if status is None:
        return c.STEP_PROBE
    if not status.onboarding_complete:
        return c.STEP_ONBOARD
    if status.board_id is None or status.board_id != state.board_id:
        return c.STEP_SETUP_BOARD
    if federated and settings_digest(federated) != state.federated_login_digest:
        return c.STEP_SYNC_CREDENTIALS
    return c.STEP_COMPLETE


def probe(client, branding):
    onboarding = client.get_onboarding_status()
    if not onboarding.complete:
        return DashboardStatus(onboarding_complete=False)
    board = client.get_board_by_name(require(branding, "board.name"))
    return DashboardStatus(onboarding_complete=True, board_id=board["id"] if board else None)


def perform_rotation(client, state, branding, state_file):
    """
    Mint the permanent credential from the bootstrap credential and persist it
    before anything else touches the bootstrap key.
    """
    bootstrap = bootstrap_credential(branding)
    if not bootstrap:
        raise ConfigError("branding file is missing required value 'credentials.bootstrap_api_key'")

    logger.info("[setup] Minting permanent API key from bootstrap key")
    state.set_permanent_credential(client.mint_permanent_credential(bootstrap))
    save_state(state, state_file)
    client.credential = state.permanent_credential
    logger.info("[setup] Permanent API key stored")


def perform_revocation(client, state, branding, state_file):
    bootstrap = bootstrap_credential(branding)
    if not bootstrap:
        logger.info("[setup] No bootstrap key configured, nothing to revoke")
    elif client.delete_credential(credential_ref(bootstrap)):
        logger.info("[setup] Bootstrap API key revoked")
    else:
        logger.info("[setup] Bootstrap API key already gone")
    state.mark_bootstrap_revoked()
    save_state(state, state_file)


def perform_onboarding(client, branding):
    settings = {
        "admin_username": require(branding, "credentials.admin_username"),
        "admin_password": require(branding, "credentials.admin_password"),
        "analytics": branding["settings"].get("analytics", {}),
        "crawling": branding["settings"].get("crawling", {}),
    }
    logger.info("[setup] Completing onboarding")
    client.complete_onboarding(settings)


def _ensure_cockpit(client, state, branding, board_id):
    cockpit = branding["board"].get("cockpit") or {}
    if not cockpit.get("enabled"):
        return
    if state.is_discovered(c.COCKPIT_APP_ID) or state.is_removed(c.COCKPIT_APP_ID):
        logger.debug("[setup] Cockpit tile already handled")
        return

    descriptor = AppDescriptor(
        app_id=c.COCKPIT_APP_ID,
        name=cockpit.get("name") or "Cockpit",
        url=require(branding, "board.cockpit.href"),
        description=cockpit.get("description"),
        icon_url=cockpit.get("icon_url") or None,
        width=int(cockpit.get("width", 1)),
        height=int(cockpit.get("height", 1)),
    )
    try:
        tile_id = client.create_app(descriptor)
    except Conflict:
        tile_id = client.find_app_id(descriptor.name, descriptor.url)
        if not tile_id:
            raise
    client.attach_app_to_board(tile_id, board_id, descriptor.width, descriptor.height)
    state.mark_discovered(c.COCKPIT_APP_ID, tile_id)
    logger.info(f"[setup] Cockpit tile added to board ({tile_id})")


def perform_board_setup(client, state, branding, state_file):
    board = branding["board"]
    definition = {
        "name": require(branding, "board.name"),
        "column_count": board.get("column_count", 10),
        "is_public": board.get("is_public", True),
        "color_scheme": branding.get("theme", {}).get("default_color_scheme"),
    }
    board_id = client.upsert_board(definition)
    state.board_id = board_id
    save_state(state, state_file)

    _ensure_cockpit(client, state, branding, board_id)
    save_state(state, state_file)


def perform_credential_sync(client, state, branding, state_file):
    settings = federated_settings(branding)
    logger.info("[setup] Pushing federated login settings")
    client.save_federated_login(settings)
    state.federated_login_digest = settings_digest(settings)
    save_state(state, state_file)


def perform_completion(state, state_file):
    state.mark_first_boot_completed()
    save_state(state, state_file)
    logger.info("[setup] First-boot setup complete")
