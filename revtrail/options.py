'''Configuration for a RevisionTracker.'''
import re

DEFAULT_EXCLUDE = (
    'id',
    'createdAt',
    'updatedAt',
    'deletedAt',
    'created_at',
    'updated_at',
    'deleted_at',
    'revision',
    )


def snake_case(name):
    '''Convert camelCase / CamelCase to snake_case.

    >>> snake_case('RevisionChange')
    'revision_change'
    '''
    name = re.sub(r'(.)([A-Z][a-z]+)', r'\1_\2', name)
    return re.sub(r'([a-z0-9])([A-Z])', r'\1_\2', name).lower()


class Options(object):
    '''Options for revision tracking.

    All values are given as keyword arguments; anything not given takes the
    class level default below. Unknown names raise TypeError so typos do not
    pass silently.
    '''
    excluded_fields = DEFAULT_EXCLUDE
    revision_field_name = 'revision'
    revision_entity_name = 'Revision'
    change_entity_name = 'RevisionChange'
    enable_change_log = False
    use_uuid = False
    # snake_case default table names
    snake_case_naming = False
    # snake_case column names (entity_id, created_at, ...)
    snake_case_fields = False
    user_entity_name = None
    user_attribution_field_name = 'userId'
    enable_compression = False
    enable_migration_on_startup = False
    strict_diff = True
    ambient_namespace_name = None
    ambient_attribution_key = 'userId'
    ambient_metadata_key = 'metaData'
    # field name -> required flag; the keys declare the metadata columns
    required_metadata_fields = None
    # field name -> sqlalchemy type for declared metadata columns
    metadata_columns = None
    table_name = None
    change_table_name = None
    belongs_to_user_options = None

    def __init__(self, **kw):
        names = self.names()
        for k, v in kw.items():
            if k not in names:
                raise TypeError('Unknown revision option: %s' % k)
            setattr(self, k, v)

    @classmethod
    def names(cls):
        return [ k for k, v in vars(Options).items()
                 if not k.startswith('_') and not callable(v)
                 and not isinstance(v, (property, classmethod)) ]

    @property
    def exclude(self):
        '''Global exclusion set (always including the revision field).'''
        return frozenset(self.excluded_fields) | {self.revision_field_name}

    @property
    def metadata_fields(self):
        '''Names of all declared metadata fields, in declaration order.'''
        names = list(self.required_metadata_fields or ())
        for name in (self.metadata_columns or ()):
            if name not in names:
                names.append(name)
        return names

    @property
    def required_fields(self):
        return [ name for name, required in
                 (self.required_metadata_fields or {}).items() if required ]

    def column_name(self, name):
        '''Database column name for a default (camelCase) column name.'''
        if self.snake_case_fields:
            return snake_case(name)
        return name

    @property
    def revision_table_name(self):
        if self.table_name:
            return self.table_name
        if self.snake_case_naming:
            return snake_case(self.revision_entity_name)
        return self.revision_entity_name

    @property
    def revision_change_table_name(self):
        if self.change_table_name:
            return self.change_table_name
        if self.snake_case_naming:
            return snake_case(self.change_entity_name)
        return self.change_entity_name

    def __repr__(self):
        return '<Options %s>' % ', '.join(
            '%s=%r' % (k, getattr(self, k)) for k in sorted(vars(self)))
