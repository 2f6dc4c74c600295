"""Score component parsing, totals and term naming."""

from decimal import Decimal, InvalidOperation

from score_errors import InvalidInput

SCORE_COMPONENTS = ('assess_1', 'assess_2', 'test_1', 'test_2', 'exam')

COMPONENT_LABELS = {
    'assess_1': 'First assessment',
    'assess_2': 'Second assessment',
    'test_1': 'First test',
    'test_2': 'Second test',
    'exam': 'Exam',
}

# Canonical short form is the only one written to the store.
TERM_ALIASES = {
    '1st': '1st',
    'first': '1st',
    'first term': '1st',
    '2nd': '2nd',
    'second': '2nd',
    'second term': '2nd',
    '3rd': '3rd',
    'third': '3rd',
    'third term': '3rd',
}

TERM_LABELS = {
    '1st': 'First Term',
    '2nd': 'Second Term',
    '3rd': 'Third Term',
}

ZERO = Decimal('0')

# Components and totals are stored as NUMERIC(8,2).
SCORE_STEP = Decimal('0.01')
MAX_SCORE = Decimal('999999.99')


def normalize_term(value, required=True):
    """Map '1st'/'First Term' style names to the canonical short form."""
    raw = ' '.join(str(value or '').strip().split()).lower()
    if not raw:
        if required:
            raise InvalidInput('School term is required.')
        return None
    term = TERM_ALIASES.get(raw)
    if term is None:
        raise InvalidInput(f'Unknown school term: {value}.')
    return term


def term_label(term):
    return TERM_LABELS.get(term, term or '')


def term_sort_value(term):
    try:
        return ('1st', '2nd', '3rd').index(normalize_term(term))
    except InvalidInput:
        return 99


def parse_score(value):
    """Parse one component; empty means 0, anything the store can't hold exactly is None.

    Negative, non-numeric, over ``MAX_SCORE`` and more than two decimal
    places are all rejected.
    """
    if value is None:
        return ZERO
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return ZERO
    try:
        parsed = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        return None
    if not parsed.is_finite() or parsed < 0 or parsed > MAX_SCORE:
        return None
    if parsed != parsed.quantize(SCORE_STEP):
        return None
    return parsed


def parse_components(raw):
    """Validate all five components; the whole set is rejected if any one fails."""
    raw = raw or {}
    parsed = {}
    invalid = []
    for name in SCORE_COMPONENTS:
        value = parse_score(raw.get(name))
        if value is None:
            invalid.append(COMPONENT_LABELS[name])
        else:
            parsed[name] = value
    if invalid:
        raise InvalidInput(
            f"All scores must be non-negative numbers with at most two decimal places ({', '.join(invalid)})."
        )
    return parsed


def compute_total(components):
    """Sum the five components exactly; missing or empty components count as 0.

    Accepts a mapping keyed by component name or a sequence in
    ``SCORE_COMPONENTS`` order.
    """
    if isinstance(components, dict):
        values = [components.get(name) for name in SCORE_COMPONENTS]
    else:
        values = list(components or [])
        if len(values) > len(SCORE_COMPONENTS):
            raise InvalidInput('Expected at most five score components.')
    total = ZERO
    for value in values:
        parsed = parse_score(value)
        if parsed is None:
            raise InvalidInput('All scores must be non-negative numbers with at most two decimal places.')
        total += parsed
    if total > MAX_SCORE:
        raise InvalidInput(f'Total score cannot exceed {MAX_SCORE}.')
    return total
