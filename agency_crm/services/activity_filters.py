"""Filter construction for activity queries.

Every query is a conjunction of independent clauses. The agent visibility
rule is itself a disjunction (``agent_id == A OR user_id == A``) nested inside
that conjunction, so clauses are kept as a list of SQLAlchemy expressions and
only joined with ``and_`` at the call site.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import ColumnElement, and_, case, literal, or_, select

from ..models.activity import Activity, ActivityTag
from ..models.base import utcnow
from ..schemas.activity import ActivityListQuery
from ..security.actor import Actor

WINDOW_DAYS = {"last7days": 7, "last30days": 30, "last90days": 90}
RECENT_WINDOW = timedelta(hours=24)

# Field weights for relevance ranking of free-text search.
SEARCH_WEIGHTS = (
    (Activity.action, 3),
    (Activity.entity_name, 2),
    (Activity.description, 1),
    (Activity.details, 1),
)
MAX_SEARCH_TERMS = 10


@dataclass(frozen=True)
class DateWindow:
    start: datetime
    end: datetime
    end_inclusive: bool = True

    def clauses(self, column=Activity.created_at) -> list[ColumnElement]:
        upper = column <= self.end if self.end_inclusive else column < self.end
        return [column >= self.start, upper]


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def named_window(name: str | None, now: datetime) -> DateWindow | None:
    """Resolve today / yesterday / lastNdays relative to ``now``."""
    if not name or name == "all":
        return None
    if name == "today":
        return DateWindow(start_of_day(now), now)
    if name == "yesterday":
        today = start_of_day(now)
        return DateWindow(today - timedelta(days=1), today, end_inclusive=False)
    days = WINDOW_DAYS.get(name)
    if days is None:
        return None
    return DateWindow(now - timedelta(days=days), now)


def recent_window(now: datetime) -> DateWindow:
    return DateWindow(now - RECENT_WINDOW, now)


def resolve_date_window(
    date_filter: str | None,
    start_date: datetime | None,
    end_date: datetime | None,
    is_recent: bool | None,
    now: datetime,
) -> DateWindow | None:
    """Apply date precedence: isRecent > explicit start+end > named filter."""
    if is_recent:
        return recent_window(now)
    if start_date and end_date:
        return DateWindow(start_date, end_date)
    return named_window(date_filter, now)


def visibility_clause(actor: Actor) -> ColumnElement | None:
    """Agents only see activities attributed to them as agent or as user."""
    if actor.is_agent:
        return or_(Activity.agent_id == actor.id, Activity.user_id == actor.id)
    return None


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def search_terms(search: str | None) -> list[str]:
    if not search:
        return []
    terms = list(dict.fromkeys(t for t in search.split() if t))
    return terms[:MAX_SEARCH_TERMS]


def text_match_clause(search: str | None) -> ColumnElement | None:
    """Match when any term occurs in any indexed text field."""
    terms = search_terms(search)
    if not terms:
        return None
    conditions = [
        column.ilike(f"%{_escape_like(term)}%", escape="\\")
        for term in terms
        for column, _weight in SEARCH_WEIGHTS
    ]
    return or_(*conditions)


def relevance_score(search: str | None) -> ColumnElement:
    """Weighted count of (term, field) matches."""
    terms = search_terms(search)
    if not terms:
        return literal(0)
    score = None
    for term in terms:
        pattern = f"%{_escape_like(term)}%"
        for column, weight in SEARCH_WEIGHTS:
            part = case((column.ilike(pattern, escape="\\"), weight), else_=0)
            score = part if score is None else score + part
    return score


def tag_match_clause(tags: list[str] | None) -> ColumnElement | None:
    """Match activities holding at least one of ``tags``."""
    if not tags:
        return None
    tagged = select(ActivityTag.activity_id).where(ActivityTag.tag.in_(tags))
    return Activity.id.in_(tagged)


def list_filter_clauses(
    query: ActivityListQuery,
    actor: Actor,
    now: datetime | None = None,
) -> list[ColumnElement]:
    now = now or utcnow()
    clauses: list[ColumnElement] = []

    equality = (
        (Activity.type, query.type),
        (Activity.entity_type, query.entity_type),
        (Activity.agent_id, query.agent_id),
        (Activity.client_id, query.client_id),
        (Activity.user_id, query.user_id),
        (Activity.entity_id, query.entity_id),
        (Activity.priority, query.priority),
        (Activity.status, query.status),
    )
    for column, value in equality:
        if value is not None:
            clauses.append(column == value)

    clauses.append(Activity.is_visible.is_(True))

    window = resolve_date_window(
        query.date_filter, query.start_date, query.end_date, query.is_recent, now
    )
    if window:
        clauses.extend(window.clauses())

    for clause in (tag_match_clause(query.tags), text_match_clause(query.search), visibility_clause(actor)):
        if clause is not None:
            clauses.append(clause)
    return clauses


def combine(clauses: list[ColumnElement]) -> ColumnElement:
    return and_(*clauses) if clauses else literal(True)
