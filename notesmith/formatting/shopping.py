"""
Shopping List Formatter

Parses shopping list lines into items with quantity, unit, notes and a
store section, merges duplicates, and renders the list in store walking
order (Produce first, Household last).

Item parsing:
    "2 lbs apples (organic)" → quantity "2", unit "lbs", name "apples",
                               notes "organic", section Produce

Duplicates are matched on the lowercase name once quantity, unit and notes
are stripped. Quantities are added when both sides have one in the same
unit; otherwise the later note is appended to the earlier item.
"""

import re
from fractions import Fraction

from notesmith.classification.base import COMPLETED_RE, LabeledLine
from notesmith.classification.shopping import (
    ITEM_PATTERNS,
    STORE_LAYOUT_ORDER,
    ShoppingLineClassifier,
    ShoppingLineLabel,
    detect_section,
)
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
    ShoppingCategory,
    ShoppingItem,
    ShoppingListsData,
    ShoppingListStats,
)

OTHER_SECTION = "Other"

_UNITS = r"lbs?|pounds?|oz|ounces?|gallons?|quarts?|pints?|cups?|pieces?|items?|boxes?|cans?|bottles?|bags?|loaves?|dozen"
QUANTITY_PATTERNS = (
    re.compile(rf"^(\d+(?:\.\d+)?)\s*({_UNITS})\b\.?\s*(?:of\s+)?", re.IGNORECASE),
    re.compile(r"^(\d+/\d+)\s*(lbs?|pounds?|oz|ounces?|gallons?|quarts?|pints?|cups?)\b\.?\s*(?:of\s+)?",
               re.IGNORECASE),
    re.compile(r"^(\d+)\s*(?:x\s+)?"),
)
TRAILING_NOTES_RE = re.compile(r"\s*\(([^)]*)\)\s*$")

UNIT_STANDARDIZATIONS = {
    'lb': 'lbs', 'pound': 'lbs', 'pounds': 'lbs',
    'ounce': 'oz', 'ounces': 'oz',
    'gallons': 'gallon',
    'quarts': 'quart',
    'pints': 'pint',
    'cups': 'cup',
    'piece': 'pieces',
    'item': 'items',
    'box': 'boxes',
    'can': 'cans',
    'bottle': 'bottles',
    'bag': 'bags',
    'loaf': 'loaves',
}

CATEGORY_MAPPINGS = {
    'Produce': ('apple', 'apples', 'banana', 'bananas', 'orange', 'oranges', 'lettuce', 'spinach',
                'carrot', 'carrots', 'onion', 'onions', 'potato', 'potatoes', 'tomato', 'tomatoes',
                'avocado', 'avocados', 'broccoli', 'celery', 'cucumber', 'peppers', 'mushrooms',
                'garlic', 'lemons', 'limes', 'grapes', 'berries', 'strawberries', 'kale'),
    'Dairy': ('milk', 'cheese', 'butter', 'yogurt', 'cream', 'eggs', 'egg', 'sour cream',
              'cottage cheese', 'cream cheese', 'mozzarella'),
    'Meat & Seafood': ('chicken', 'beef', 'pork', 'fish', 'salmon', 'tuna', 'shrimp', 'turkey',
                       'bacon', 'sausage', 'ground beef'),
    'Deli': ('ham', 'salami', 'deli meat', 'hummus', 'sliced turkey'),
    'Bakery': ('bread', 'bagels', 'rolls', 'muffins', 'croissant', 'cake', 'cookies', 'donuts',
               'tortillas'),
    'Pantry': ('rice', 'pasta', 'flour', 'sugar', 'salt', 'pepper', 'oil', 'olive oil', 'vinegar',
               'spices', 'cereal', 'oats', 'honey', 'peanut butter'),
    'Canned Goods': ('beans', 'soup', 'tomato sauce', 'canned tomatoes', 'tuna can', 'chicken broth'),
    'Beverages': ('water', 'juice', 'soda', 'coffee', 'tea', 'beer', 'wine'),
    'Frozen': ('ice cream', 'frozen vegetables', 'frozen fruit', 'frozen pizza', 'frozen meals'),
    'Snacks': ('chips', 'crackers', 'nuts', 'candy', 'popcorn', 'pretzels'),
    'Health & Beauty': ('shampoo', 'soap', 'toothpaste', 'deodorant', 'vitamins'),
    'Household': ('paper towels', 'toilet paper', 'laundry detergent', 'dish soap', 'trash bags',
                  'aluminum foil'),
}

_KEYWORD_SECTIONS = {keyword: section for section, keywords in CATEGORY_MAPPINGS.items()
                     for keyword in keywords}
# Longest keywords first so "ice cream" wins over "cream" in partial matches
_PARTIAL_KEYWORDS = sorted(_KEYWORD_SECTIONS, key=lambda keyword: (-len(keyword), keyword))


def standardize_unit(unit: str | None) -> str | None:
    if not unit:
        return None
    lowered = unit.lower()
    return UNIT_STANDARDIZATIONS.get(lowered, lowered)


def categorize(name: str) -> str | None:
    """Store section for an item name: exact keyword first, then partial."""
    lowered = name.lower().strip()
    if lowered in _KEYWORD_SECTIONS:
        return _KEYWORD_SECTIONS[lowered]
    for keyword in _PARTIAL_KEYWORDS:
        if keyword in lowered or (len(lowered) > 3 and lowered in keyword):
            return _KEYWORD_SECTIONS[keyword]
    return None


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", '-', name.lower()).strip('-') or 'item'


def parse_item(text: str) -> ShoppingItem | None:
    """Parse one list line into a ShoppingItem with an empty id."""
    checked = bool(COMPLETED_RE.search(text))
    body = text.strip()
    for pattern in ITEM_PATTERNS[:3]:
        body = pattern.sub('', body, count=1)
    body = COMPLETED_RE.sub('', body).strip()

    notes = None
    trailing = TRAILING_NOTES_RE.search(body)
    if trailing:
        notes = trailing.group(1).strip() or None
        body = body[:trailing.start()].strip()

    quantity, unit = None, None
    for pattern in QUANTITY_PATTERNS:
        match = pattern.match(body)
        if match:
            quantity = match.group(1)
            unit = standardize_unit(match.group(2)) if pattern.groups > 1 else None
            body = body[match.end():].strip()
            break

    name = body.strip(' ,.;:-')
    if not name:
        return None
    return ShoppingItem(id="", name=name, quantity=quantity, unit=unit, notes=notes, checked=checked)


def _merge_quantity(first: str, second: str) -> str | None:
    try:
        total = Fraction(first) + Fraction(second)
    except (ValueError, ZeroDivisionError):
        return None
    if total.denominator == 1:
        return str(total.numerator)
    if '.' in first or '.' in second:
        return f"{float(total):g}"
    return str(total)


def merge_items(existing: ShoppingItem, duplicate: ShoppingItem) -> None:
    """Fold a duplicate into the item already on the list."""
    merged = None
    if existing.quantity and duplicate.quantity and existing.unit == duplicate.unit:
        merged = _merge_quantity(existing.quantity, duplicate.quantity)
    if merged is not None:
        existing.quantity = merged
    elif existing.quantity is None and duplicate.quantity:
        existing.quantity, existing.unit = duplicate.quantity, duplicate.unit

    if duplicate.notes and duplicate.notes != existing.notes:
        existing.notes = f"{existing.notes}, {duplicate.notes}" if existing.notes else duplicate.notes


class ShoppingListOrganizer(BaseOrganizer):
    name = "Shopping List Organizer"

    def organize(self, lines: list[LabeledLine], context: OrganizerContext) -> OrganizedDocument:
        parsed: list[ShoppingItem] = []
        section = None

        for line in lines:
            if line.is_blank:
                continue
            if line.label is ShoppingLineLabel.CATEGORY_HEADER:
                section = detect_section(line.stripped)
                continue
            if line.label is ShoppingLineLabel.HEADER:
                continue
            item = parse_item(line.stripped)
            if item is None:
                continue
            item.category = section or categorize(item.name) or OTHER_SECTION
            parsed.append(item)

        items = self._deduplicate(parsed)
        order = {name: position for position, name in enumerate(STORE_LAYOUT_ORDER)}
        items.sort(key=lambda item: (order.get(item.category, len(order)), item.name.lower()))

        used_ids: set[str] = set()
        for item in items:
            item.id = slugify(item.name)
            suffix = 2
            while item.id in used_ids:
                item.id = f"{slugify(item.name)}-{suffix}"
                suffix += 1
            used_ids.add(item.id)

        categories: list[ShoppingCategory] = []
        for item in items:
            if not categories or categories[-1].name != item.category:
                categories.append(ShoppingCategory(name=item.category, section=item.category,
                                                   order=order.get(item.category, len(order))))
            categories[-1].item_ids.append(item.id)

        duplicates = len(parsed) - len(items)
        data = ShoppingListsData(
            categories=categories,
            items=items,
            stats=ShoppingListStats(total_items=len(items), total_categories=len(categories),
                                    duplicates_removed=duplicates),
        )
        debug_log(f"[SHOPPING] {len(items)} items in {len(categories)} sections, "
                  f"{duplicates} duplicates merged")

        return OrganizedDocument(
            data=data,
            confidence=self._confidence(items, context.scoring),
            item_count=len(items),
            entries=len(items),
            items_extracted=len(parsed),
            duplicates_removed=duplicates,
            auxiliary_sections=len(categories),
        )

    @staticmethod
    def _deduplicate(items: list[ShoppingItem]) -> list[ShoppingItem]:
        unique: dict[str, ShoppingItem] = {}
        for item in items:
            key = item.name.lower()
            if key in unique:
                merge_items(unique[key], item)
            else:
                unique[key] = item
        return list(unique.values())

    @staticmethod
    def _confidence(items: list[ShoppingItem], scoring: dict) -> int:
        if not items:
            return 0
        categorized = sum(1 for item in items if item.category != OTHER_SECTION) / len(items)
        with_quantity = sum(1 for item in items if item.quantity) / len(items)
        score = scoring.get('base', 60)
        score += scoring.get('categorized_weight', 25) * categorized
        score += scoring.get('quantity_weight', 10) * with_quantity
        if len(items) > scoring.get('volume_min_items', 5):
            score += scoring.get('volume_bonus', 5)
        return clamp_score(score)


class ShoppingListRenderer(BaseRenderer):
    name = "Shopping List Renderer"

    def render(self, document: OrganizedDocument) -> str:
        data: ShoppingListsData = document.data
        by_id = {item.id: item for item in data.items}
        out = ["# 🛒 Shopping List\n"]

        for category in data.categories:
            title = "Other Items" if category.name == OTHER_SECTION else category.name
            out.append(f"## {title}\n")
            out.extend(self._item_line(by_id[item_id]) for item_id in category.item_ids)
            out.append("")

        out.append(f"\n---\n**Summary:** {data.stats.total_items} items across "
                   f"{data.stats.total_categories} categories")
        if data.stats.duplicates_removed:
            out.append(f"\n*{data.stats.duplicates_removed} duplicate items were consolidated*")
        return '\n'.join(out)

    @staticmethod
    def _item_line(item: ShoppingItem) -> str:
        parts = ["☑️" if item.checked else "🔲"]
        if item.quantity:
            parts.append(item.quantity)
        if item.unit:
            parts.append(item.unit)
        parts.append(item.name)
        line = ' '.join(parts)
        if item.notes:
            line += f" *({item.notes})*"
        return line


class ShoppingListEngine(BaseFormatEngine):
    format_type = FormatType.SHOPPING_LISTS
    classifier_class = ShoppingLineClassifier
    organizer_class = ShoppingListOrganizer
    renderer_class = ShoppingListRenderer
