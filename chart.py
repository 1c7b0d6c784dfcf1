from __future__ import annotations

from constants import STATE_PALETTE


def sorted_members(workload, search: str | None = None) -> list[str]:
    """Return members with at least one item, busiest first.

    ``search`` keeps only names containing it, ignoring case. Ties keep the
    mapping's order.
    """
    if not workload:
        return []
    term = (search or "").strip().lower()
    members = [
        (name, entry.total)
        for name, entry in workload.items()
        if entry.total > 0 and (not term or term in name.lower())
    ]
    members.sort(key=lambda x: x[1], reverse=True)
    return [name for name, _ in members]


def _border(color: str) -> str:
    return color.replace("0.5)", "1)")


def build_chart_data(workload, palette=None, search: str | None = None) -> dict:
    """Reshape the workload mapping into one stacked series per state."""
    palette = palette or STATE_PALETTE
    members = sorted_members(workload, search)
    series = []
    for state, color in palette.items():
        series.append(
            {
                "label": state,
                "values": [
                    sum(1 for item in workload[member].items if item.state == state)
                    for member in members
                ],
                "color": color,
                "border_color": _border(color),
            }
        )
    return {"categories": members, "series": series}


def workload_to_json(workload, search: str | None = None) -> dict:
    members = sorted_members(workload, search)
    return {member: workload[member].to_dict() for member in members}
