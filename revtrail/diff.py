'''Field level differences between two attribute snapshots.

Only flat snapshots are compared: nested values (mappings, lists, sets) are
dropped before comparison. Differences are reported as FieldChange objects
whose dict form is what gets stored in change documents, e.g.::

    {'kind': 'E', 'path': ['name'], 'lhs': 'a', 'rhs': 'b'}
'''
import datetime
import difflib
import json
import numbers
from collections.abc import Mapping, Set


class _Missing(object):
    def __repr__(self):
        return '<MISSING>'

    def __bool__(self):
        return False

MISSING = _Missing()


class FieldChange(object):
    class Kind(object):
        ADDED = 'N'
        EDITED = 'E'
        DELETED = 'D'

    def __init__(self, kind, path, lhs=MISSING, rhs=MISSING):
        self.kind = kind
        self.path = list(path)
        self.lhs = lhs
        self.rhs = rhs

    @property
    def name(self):
        return self.path[0]

    def to_dict(self):
        out = {'kind': self.kind, 'path': list(self.path)}
        if self.lhs is not MISSING:
            out['lhs'] = self.lhs
        if self.rhs is not MISSING:
            out['rhs'] = self.rhs
        return out

    def __eq__(self, other):
        if not isinstance(other, FieldChange):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self):
        return '<FieldChange %s %s %r -> %r>' % (self.kind, self.name,
                self.lhs, self.rhs)


def is_nested(value):
    if isinstance(value, (str, bytes)):
        return False
    return isinstance(value, (Mapping, list, tuple, Set))


def filter_snapshot(snapshot, excluded=()):
    '''Drop excluded keys and nested values from an attribute snapshot.'''
    return dict(
        (key, value) for key, value in snapshot.items()
        if key not in excluded and not is_nested(value)
        )


def _family(value):
    if value is None:
        return 'null'
    if isinstance(value, bool):
        return 'boolean'
    if isinstance(value, numbers.Number):
        return 'number'
    if isinstance(value, str):
        return 'string'
    if isinstance(value, (datetime.date, datetime.time)):
        return 'date'
    return type(value).__name__


def strict_equals(lhs, rhs):
    return _family(lhs) == _family(rhs) and lhs == rhs


def _as_number(value):
    if isinstance(value, numbers.Number):
        return value
    text = value.strip()
    if not text:
        return 0
    try:
        return float(text)
    except ValueError:
        return None


def loose_equals(lhs, rhs):
    '''Equality with type coercion (1 == '1', True == 1, date == iso string).'''
    if lhs is None or rhs is None:
        return lhs is None and rhs is None
    if lhs == rhs:
        return True
    families = set([_family(lhs), _family(rhs)])
    if families <= set(['number', 'boolean', 'string']) and \
            families != set(['string']):
        left, right = _as_number(lhs), _as_number(rhs)
        return left is not None and right is not None and left == right
    return stringify(lhs) == stringify(rhs)


def compute_delta(previous, current, excluded=(), strict=True):
    '''Compute the ordered list of FieldChanges from previous to current.

    :param excluded: attribute names to ignore.
    :param strict: if False values are compared with type coercion so that
        e.g. 1 and '1' are considered equal.
    '''
    equals = strict_equals if strict else loose_equals
    previous = filter_snapshot(previous, excluded)
    current = filter_snapshot(current, excluded)
    delta = []
    for key, value in current.items():
        if key not in previous:
            delta.append(FieldChange(FieldChange.Kind.ADDED, [key], rhs=value))
        elif not equals(previous[key], value):
            delta.append(FieldChange(FieldChange.Kind.EDITED, [key],
                lhs=previous[key], rhs=value))
    for key, value in previous.items():
        if key not in current:
            delta.append(FieldChange(FieldChange.Kind.DELETED, [key], lhs=value))
    return delta


def json_default(value):
    if isinstance(value, (datetime.date, datetime.time)):
        return value.isoformat()
    return str(value)


def stringify(value):
    '''String form of a value as used for character diffs.'''
    if value is None or value is MISSING:
        return ''
    if isinstance(value, str):
        return value
    if isinstance(value, (datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, (bool, int, float)):
        return json.dumps(value)
    return str(value)


def diff_chars(old, new):
    '''Character level diff of two strings.

    :return: list of segments ``{'count': n, 'value': s}`` flagged with
        ``'added': True`` or ``'removed': True`` where they differ.
    '''
    segments = []

    def add(value, **flags):
        if value:
            segment = {'count': len(value), 'value': value}
            segment.update(flags)
            segments.append(segment)

    matcher = difflib.SequenceMatcher(None, old, new, autojunk=False)
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == 'equal':
            add(old[i1:i2])
        else:
            add(old[i1:i2], removed=True)
            add(new[j1:j2], added=True)
    return segments
