"""
app_manager.py
- Per-app reconciliation between discovered containers and dashboard tiles.
- Policy:
    - removed apps are never re-added
    - discovered apps are never re-created
    - new apps are created, attached to the board, then recorded
- Failures are isolated to the app that caused them.
"""

from loguru import logger

from core.errors import AdapterError, Conflict, NotFound

OUTCOME_CREATED = "created"
OUTCOME_EXISTING = "existing"
OUTCOME_EXCLUDED = "excluded"
OUTCOME_FAILED = "failed"

BOARD_LOOKUP_PROCEDURE = "board.getBoardById"


class BoardMissing(AdapterError):
    """The board a tile was being attached to is gone; tile_id is the tile already created."""

    def __init__(self, board_id, tile_id):
        super().__init__(f"Board {board_id} no longer exists on the dashboard")
        self.board_id = board_id
        self.tile_id = tile_id


def evict_deleted_tiles(client, state, dry_run=False):
    """
    Move apps whose tile was deleted on the dashboard into removed_apps.

    Returns:
        int: Number of apps excluded by this pass.
    """
    if not state.discovered_apps:
        return 0

    try:
        live_ids = {app.get("id") for app in client.list_apps()}
    except AdapterError as e:
        logger.warning(f"[sync] Could not list dashboard apps, skipping tile verification: {e}")
        return 0

    if not live_ids:
        logger.warning("[sync] Dashboard reports no apps at all, skipping tile verification.")
        return 0

    evicted = 0
    for app_id, tile_id in sorted(state.discovered_apps.items()):
        if tile_id in live_ids:
            continue
        if dry_run:
            logger.info(f"[sync] (Dry Run) Would exclude {app_id}: tile {tile_id} was deleted from the dashboard")
        else:
            logger.info(f"[sync] Tile {tile_id} for {app_id} was deleted from the dashboard, excluding it from sync")
            state.mark_removed(app_id)
        evicted += 1
    return evicted


def _create_tile(client, app):
    try:
        return client.create_app(app)
    except Conflict:
        tile_id = client.find_app_id(app.name, app.url)
        if not tile_id:
            raise
        logger.info(f"[sync] {app.app_id} already exists on the dashboard as {tile_id}, adopting it")
        return tile_id


def sync_app(client, state, app, board_id, dry_run=False):
    """
    Reconcile one discovered app.

    Returns:
        str: One of the OUTCOME_* constants.

    Raises:
        BoardMissing: If the board was deleted; every other dashboard failure is isolated as OUTCOME_FAILED.
    """
    if state.is_removed(app.app_id):
        logger.debug(f"[sync] {app.app_id} is excluded, skipping")
        return OUTCOME_EXCLUDED

    if state.is_discovered(app.app_id):
        logger.debug(f"[sync] {app.app_id} already on dashboard ({state.discovered_apps[app.app_id]})")
        return OUTCOME_EXISTING

    if dry_run:
        logger.info(f"[sync] (Dry Run) Would create tile {app.name} → {app.url}")
        return OUTCOME_CREATED

    try:
        tile_id = _create_tile(client, app)
    except AdapterError as e:
        logger.warning(f"[sync] Failed to add {app.app_id} ({app.container_name}): {e}")
        return OUTCOME_FAILED
    return attach_tile(client, state, app, tile_id, board_id)


def attach_tile(client, state, app, tile_id, board_id):
    """
    Put an already created tile on the board and record it.

    Raises:
        BoardMissing: If the board itself no longer exists on the dashboard.
    """
    try:
        client.attach_app_to_board(tile_id, board_id, app.width, app.height)
    except NotFound as e:
        if e.procedure == BOARD_LOOKUP_PROCEDURE:
            raise BoardMissing(board_id, tile_id)
        logger.warning(f"[sync] Failed to add {app.app_id} ({app.container_name}): {e}")
        return OUTCOME_FAILED
    except AdapterError as e:
        logger.warning(f"[sync] Failed to add {app.app_id} ({app.container_name}): {e}")
        return OUTCOME_FAILED

    state.mark_discovered(app.app_id, tile_id)
    logger.info(f"[sync] Added {app.name} ({app.app_id}) as tile {tile_id}")
    return OUTCOME_CREATED
