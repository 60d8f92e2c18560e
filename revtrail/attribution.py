'''Work out who made a change and with what metadata.'''
import logging
logger = logging.getLogger('revtrail')

from .errors import MissingAttributionError
from .options import Options
from .revision import Operation


class Attribution(object):
    def __init__(self, user_id=None, metadata=None):
        self.user_id = user_id
        self.metadata = metadata or {}

    def __eq__(self, other):
        if not isinstance(other, Attribution):
            return NotImplemented
        return (self.user_id, self.metadata) == (other.user_id, other.metadata)

    def __repr__(self):
        return '<Attribution user_id=%r metadata=%r>' % (self.user_id,
                self.metadata)


def resolve_attribution(user_id=None, metadata=None, namespace=None,
        options=None, fail_hard=False, operation=None,
        previous_revision=None, worthy=True):
    '''Merge explicit attribution with values from the ambient namespace.

    An explicit user_id wins over the ambient one. Metadata mappings are
    merged key by key with explicit keys winning.

    In hard failure mode MissingAttributionError is raised when an update
    has no previous revision number or when a required metadata field was not
    provided (an explicit None counts as provided). A missing ambient user is
    only an error when the mutation is worthy of a revision and no user was
    given explicitly. Otherwise missing values are simply left as None.
    '''
    options = options or Options()

    if fail_hard and operation == Operation.UPDATE and not previous_revision:
        raise MissingAttributionError(
            'Revision number was not set on the instance being updated')

    ambient_user_id = None
    merged = {}
    if namespace is not None:
        ambient_user_id = namespace.get(options.ambient_attribution_key)
        merged.update(namespace.get(options.ambient_metadata_key) or {})
    merged.update(metadata or {})

    if user_id is None:
        user_id = ambient_user_id
        if fail_hard and worthy and namespace is not None and user_id is None:
            raise MissingAttributionError(
                'The ambient key %s was not set in namespace %s' % (
                    options.ambient_attribution_key, namespace.name))

    missing = [ field for field in options.required_fields
                if field not in merged ]
    if missing:
        logger.debug('Required metadata fields: %s, provided: %s',
                options.required_fields, sorted(merged))
        if fail_hard:
            raise MissingAttributionError(
                'Required revision metadata not provided: %s' %
                ', '.join(missing))

    return Attribution(user_id, merged)
