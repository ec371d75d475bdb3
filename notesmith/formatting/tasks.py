"""
Task List Formatter

Parses checkbox, bullet and numbered to-do lines into Task records with
completion state, priority tier, due date and category, then renders them
grouped by category and sorted so the most pressing open work comes first.

Sorting is stable: completed tasks last, then priority (urgent → low), then
due date (dated before undated). Tasks that tie keep their input order.
"""

import re
from datetime import date

from notesmith.classification.base import COMPLETED_RE, LabeledLine
from notesmith.classification.tasks import (
    PRIORITY_KEYWORDS,
    TASK_ITEM_PATTERNS,
    TaskLineClassifier,
    TaskLineLabel,
    detect_category,
)
from notesmith.extraction.dates import find_due_date, format_display_date, strip_due_date
from notesmith.formatting.base import (
    BaseFormatEngine,
    BaseOrganizer,
    BaseRenderer,
    OrganizedDocument,
    OrganizerContext,
    clamp_score,
)
from notesmith.logging_config import debug_log
from notesmith.models import (
    FormatType,
    Priority,
    Task,
    TaskCategory,
    TaskListsData,
    TaskListStats,
    TaskStatus,
)

DEFAULT_CATEGORY = "Tasks"
OTHER_CATEGORY = "Other Tasks"
MIN_PLAIN_TASK_CHARS = 3

PRIORITY_EMOJI = {
    Priority.URGENT: " 🔴",
    Priority.HIGH: " 🟠",
    Priority.MEDIUM: "",
    Priority.LOW: " 🔵",
}


def _keyword_pattern(keyword: str) -> re.Pattern:
    if keyword == 'priority':
        # Bare "priority" means high, but not inside "low priority"
        return re.compile(r"(?<!low )(?<!medium )\bpriority\b", re.IGNORECASE)
    if keyword[0].isalnum():
        return re.compile(rf"\b{re.escape(keyword)}\b", re.IGNORECASE)
    return re.compile(re.escape(keyword))


PRIORITY_RULES = tuple(
    (Priority(tier), tuple(_keyword_pattern(keyword) for keyword in PRIORITY_KEYWORDS[tier]))
    for tier in ('urgent', 'high', 'low')
)


def detect_priority(text: str) -> Priority:
    """Urgent, then high, then low keyword tiers; medium when none match."""
    for priority, patterns in PRIORITY_RULES:
        if any(pattern.search(text) for pattern in patterns):
            return priority
    return Priority.MEDIUM


def remove_priority_keywords(text: str) -> str:
    for _, patterns in PRIORITY_RULES:
        for pattern in patterns:
            text = pattern.sub('', text)
    return text


def clean_task_text(text: str) -> str:
    cleaned = text.strip()
    for pattern in TASK_ITEM_PATTERNS:
        cleaned = pattern.sub('', cleaned, count=1)
    cleaned = re.sub(r"^\[[ xX]?\]\s*", '', cleaned)
    cleaned = COMPLETED_RE.sub('', cleaned)
    return cleaned.strip()


def parse_task(text: str, reference=None) -> Task | None:
    """
    Parse one task line.

    Returns a Task with an empty id, or None if nothing is left after the
    markers, due date and priority keywords are removed.
    """
    completed = bool(COMPLETED_RE.search(text))
    body = clean_task_text(text)

    due_date, due_text = None, None
    due = find_due_date(body, reference)
    if due:
        due_text, parsed = due
        due_date = parsed.isoformat() if parsed else None
        body = strip_due_date(body)

    priority = detect_priority(body)
    body = remove_priority_keywords(body)
    body = re.sub(r"^[:\-,]\s*", '', body.strip())
    body = re.sub(r"\s+[:\-,]\s*$", '', body)
    body = re.sub(r"\s{2,}", ' ', body).strip()
    if not body:
        return None

    return Task(
        id="",
        description=body,
        priority=priority,
        due_date=due_date,
        due_text=due_text,
        status=TaskStatus.COMPLETED if completed else TaskStatus.PENDING,
    )


def sort_key(task: Task) -> tuple:
    completed = task.status is TaskStatus.COMPLETED
    if task.due_date:
        return (completed, task.priority.rank, 0, task.due_date)
    return (completed, task.priority.rank, 1, "")


class TaskListOrganizer(BaseOrganizer):
    name = "Task List Organizer"

    def organize(self, lines: list[LabeledLine], context: OrganizerContext) -> OrganizedDocument:
        tasks: list[Task] = []
        category = None

        for line in lines:
            if line.is_blank:
                category = None
                continue
            if line.label is TaskLineLabel.CATEGORY_HEADER:
                category = detect_category(line.stripped)
                continue
            if line.label is TaskLineLabel.HEADER:
                continue
            if line.label is TaskLineLabel.PLAIN and len(line.stripped) <= MIN_PLAIN_TASK_CHARS:
                continue

            task = parse_task(line.stripped, context.reference)
            if task is None:
                continue
            task.id = f"task-{len(tasks) + 1}"
            task.line = line.index
            task.category = category or detect_category(task.description)
            tasks.append(task)

        tasks.sort(key=sort_key)
        data = TaskListsData(tasks=tasks, categories=self._categories(tasks),
                             stats=self._stats(tasks, context))

        debug_log(f"[TASKS] {data.stats.total} tasks ({data.stats.completed} completed, "
                  f"{data.stats.overdue} overdue) in {len(data.categories)} categories")

        return OrganizedDocument(
            data=data,
            confidence=self._confidence(tasks, context.scoring),
            item_count=len(tasks),
            entries=len(tasks),
            items_extracted=len(tasks),
            auxiliary_sections=len(data.categories),
        )

    @staticmethod
    def _categories(tasks: list[Task]) -> list[TaskCategory]:
        categories: dict[str, TaskCategory] = {}
        for task in tasks:
            if task.category and task.category not in categories:
                categories[task.category] = TaskCategory(name=task.category)
            if task.category:
                categories[task.category].task_ids.append(task.id)
        if not categories and tasks:
            return [TaskCategory(name=DEFAULT_CATEGORY, task_ids=[task.id for task in tasks])]
        # First appearance in the input decides category order
        first_line = {name: min(t.line for t in tasks if t.category == name) for name in categories}
        ordered = sorted(categories.values(), key=lambda c: first_line[c.name])
        for position, cat in enumerate(ordered):
            cat.priority = position
        return ordered

    @staticmethod
    def _stats(tasks: list[Task], context: OrganizerContext) -> TaskListStats:
        today = context.reference.date()
        completed = sum(1 for task in tasks if task.status is TaskStatus.COMPLETED)
        overdue = sum(1 for task in tasks
                      if task.status is not TaskStatus.COMPLETED and task.due_date
                      and date.fromisoformat(task.due_date) < today)
        return TaskListStats(total=len(tasks), completed=completed,
                             pending=len(tasks) - completed, overdue=overdue)

    @staticmethod
    def _confidence(tasks: list[Task], scoring: dict) -> int:
        if not tasks:
            return 0
        score = scoring.get('base', 50)
        if len(tasks) >= scoring.get('volume_min_tasks', 3):
            score += scoring.get('volume_bonus', 20)
        if any(task.priority is not Priority.MEDIUM for task in tasks):
            score += scoring.get('priority_bonus', 15)
        if any(task.due_text for task in tasks):
            score += scoring.get('due_date_bonus', 10)
        if any(task.category for task in tasks):
            score += scoring.get('category_bonus', 15)
        return clamp_score(score)


class TaskListRenderer(BaseRenderer):
    name = "Task List Renderer"

    def render(self, document: OrganizedDocument) -> str:
        data: TaskListsData = document.data
        by_id = {task.id: task for task in data.tasks}
        out = []

        for category in data.categories:
            out.append(f"# {category.name}")
            out.append("")
            out.extend(self._task_line(by_id[tid], document.reference) for tid in category.task_ids)
            out.append("")

        has_categories = any(task.category for task in data.tasks)
        uncategorized = [task for task in data.tasks if not task.category]
        if has_categories and uncategorized:
            out.append(f"# {OTHER_CATEGORY}")
            out.append("")
            out.extend(self._task_line(task, document.reference) for task in uncategorized)
            out.append("")

        return '\n'.join(out).strip()

    @staticmethod
    def _task_line(task: Task, reference) -> str:
        box = "[x]" if task.status is TaskStatus.COMPLETED else "[ ]"
        line = f"- {box} {task.description}{PRIORITY_EMOJI[task.priority]}"
        if task.due_date:
            line += f" (Due: {format_display_date(date.fromisoformat(task.due_date), reference)})"
        elif task.due_text:
            line += f" (Due: {task.due_text})"
        return line


class TaskListEngine(BaseFormatEngine):
    format_type = FormatType.TASK_LISTS
    classifier_class = TaskLineClassifier
    organizer_class = TaskListOrganizer
    renderer_class = TaskListRenderer
