# bot/tasks/task_registry.py
from datetime import datetime, timezone

TASKS = {}


def _iso(dt):
    try:
        return dt.astimezone(timezone.utc).isoformat() if dt else None
    except Exception:
        return None


def register_task(name: str, loop_obj, interval_desc: str):
    """Register a background loop for status display."""
    if name not in TASKS:
        TASKS[name] = {
            "name": name,
            "interval": interval_desc,
            "last_execution": None,
            "last_duration": None,
            "last_trigger": None,
            "last_summary": None,
            "next_execution": _iso(getattr(loop_obj, "next_iteration", None)),
            "running": False,
        }
    else:
        TASKS[name]["interval"] = interval_desc


def mark_start(name: str, loop_obj=None, trigger: str | None = None):
    task = TASKS.get(name)
    if task:
        task["running"] = True
        task["last_execution"] = _iso(datetime.now(timezone.utc))
        task["last_trigger"] = trigger
        task["next_execution"] = _iso(getattr(loop_obj, "next_iteration", None))


def mark_finish(name: str, started_at: datetime, loop_obj=None, summary: dict | None = None):
    task = TASKS.get(name)
    if task:
        duration = (datetime.now(timezone.utc) - started_at).total_seconds()
        task["last_duration"] = f"{duration:.2f}s"
        task["running"] = False
        if summary is not None:
            task["last_summary"] = summary
        task["next_execution"] = _iso(getattr(loop_obj, "next_iteration", None))


def get_task(name: str):
    return TASKS.get(name)
