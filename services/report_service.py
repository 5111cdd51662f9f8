"""
Sync report service.

Renders a plain-text summary of one room's recent sync events so an
operator can eyeball which player is drifting without a dashboard.
"""
from typing import Callable, Dict, List

from models import EventKind, SyncEvent, SyncPatternAnalysis


def build_sync_report(
    room_code: str,
    room_events: List[SyncEvent],
    analyze: Callable[[str], SyncPatternAnalysis],
) -> str:
    """
    Return a multi-line report for `room_events` (most recent first).

    Players appear in order of their most recent event. `analyze` supplies
    the per-player conflict rate and health.
    """
    players: Dict[str, List[SyncEvent]] = {}
    for event in room_events:
        players.setdefault(event.player_id, []).append(event)

    conflicts = sum(1 for e in room_events if e.kind == EventKind.CONFLICT)
    resolutions = sum(1 for e in room_events if e.kind == EventKind.RESOLUTION)

    lines = [
        f"=== SYNC REPORT FOR ROOM {room_code} ===",
        f"Total Events: {len(room_events)}",
        f"Active Players: {len(players)}",
        f"Conflicts: {conflicts}",
        f"Resolutions: {resolutions}",
        "",
    ]

    for player_id, events in players.items():
        latest = events[0]
        analysis = analyze(player_id)
        lines.extend([
            f"Player: {latest.player_name or player_id}",
            f"   Latest Total: €{latest.data.total_value:.2f}",
            f"   Events: {len(events)}",
            f"   Conflict Rate: {analysis.conflict_rate:.1f}%",
            f"   Health: {analysis.sync_health.value.upper()}",
            "",
        ])

    lines.append("=== END SYNC REPORT ===")
    return "\n".join(lines)
