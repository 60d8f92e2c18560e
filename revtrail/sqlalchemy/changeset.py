from datetime import datetime
import logging
logger = logging.getLogger('revtrail')

from sqlalchemy import Column, ForeignKey, Table
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import relationship
from sqlalchemy.types import DateTime, Integer, String, UnicodeText, Uuid

from revtrail.diff import diff_chars, stringify
from revtrail.errors import PersistenceError
from .sqla import JsonType, SQLAlchemyMixin, make_uuid


class Revision(SQLAlchemyMixin):
    '''A Revision of a tracked domain object.

    Holds a snapshot of the object (document), which object it belongs to
    (entity_type, entity_id), the operation that produced it and the object's
    revision number at that point.
    '''

    def __repr__(self):
        return '<Revision %s %s#%s r%s>' % (self.operation, self.entity_type,
                self.entity_id, self.revision)


class RevisionChange(SQLAlchemyMixin):
    '''A single changed field within a Revision.'''

    def __repr__(self):
        return '<RevisionChange %s>' % self.path


def _id_column(options):
    if options.use_uuid:
        return Column('id', Uuid, primary_key=True, default=make_uuid)
    return Column('id', Integer, primary_key=True, autoincrement=True)


def _timestamp_columns(options):
    return [
        Column(options.column_name('createdAt'), DateTime, key='created_at',
            default=datetime.now, nullable=False),
        Column(options.column_name('updatedAt'), DateTime, key='updated_at',
            default=datetime.now, onupdate=datetime.now, nullable=False),
        ]


def make_revision_table(metadata, options):
    id_type = Uuid if options.use_uuid else Integer
    columns = [
        _id_column(options),
        Column(options.column_name('entityType'), String(255),
            key='entity_type', nullable=False),
        Column('document', JsonType, nullable=False),
        Column(options.column_name('entityId'), id_type, key='entity_id',
            nullable=False),
        Column('operation', String(7)),
        Column(options.revision_field_name, Integer, key='revision',
            nullable=False),
        Column(options.column_name(options.user_attribution_field_name),
            id_type, key='user_id'),
        ]
    column_types = options.metadata_columns or {}
    taken = set(col.key for col in columns) | set(['created_at', 'updated_at'])
    for name in options.metadata_fields:
        if name in taken:
            msg = 'Metadata field %s clashes with a revision column' % name
            raise ValueError(msg)
        columns.append(Column(name, column_types.get(name, String(255))))
    columns.extend(_timestamp_columns(options))
    return Table(options.revision_table_name, metadata, *columns)


def make_revision_change_table(metadata, options, revision_table):
    id_type = Uuid if options.use_uuid else Integer
    return Table(options.revision_change_table_name, metadata,
            _id_column(options),
            Column('path', UnicodeText, nullable=False),
            Column('document', JsonType, nullable=False),
            Column('diff', JsonType, nullable=False),
            Column(options.column_name('revisionId'), id_type,
                ForeignKey(revision_table.c.id), key='revision_id',
                nullable=False),
            *_timestamp_columns(options)
            )


def make_tables(metadata, options):
    '''Create the revision (and if enabled the revision change) tables.

    :return: (revision_table, change_table). change_table is None unless the
        change log is enabled.
    '''
    revision_table = make_revision_table(metadata, options)
    change_table = None
    if options.enable_change_log:
        change_table = make_revision_change_table(metadata, options,
                revision_table)
    return revision_table, change_table


def setup_changeset(registry, revision_table, change_table, options):
    '''Map Revision and RevisionChange domain objects to their tables.

    The mapped classes are subclasses named after the configured entity names
    so several trackers can coexist.

    :return: (Revision class, RevisionChange class or None).
    '''
    revision_class = type(options.revision_entity_name, (Revision,), {})
    change_class = None
    properties = {}
    if change_table is not None:
        change_class = type(options.change_entity_name, (RevisionChange,), {})
        registry.map_imperatively(change_class, change_table)
        properties['changes'] = relationship(change_class,
            backref='revision', order_by=change_table.c.id)
    registry.map_imperatively(revision_class, revision_table,
        properties=properties)
    return revision_class, change_class


class RevisionPersister(object):
    '''Write Revision and RevisionChange rows.

    Rows are written with Core inserts on the connection of the running flush
    so they belong to the same transaction as the change they record.
    '''

    def __init__(self, revision_table, change_table, options):
        self.revision_table = revision_table
        self.change_table = change_table
        self.options = options

    def make_change(self, revision_id, change):
        old = stringify(change.lhs)
        new = stringify(change.rhs)
        return {
            'path': change.name,
            'document': change.to_dict(),
            'diff': diff_chars(old, new) if old or new else [],
            'revision_id': revision_id,
            }

    def persist(self, connection, operation, entity_type, entity_id,
            revision_number, document, delta, attribution):
        '''Save a revision and its changes.

        :return: dict of the inserted revision's values including its id.
        '''
        values = {
            'entity_type': entity_type,
            'document': document,
            'entity_id': entity_id,
            'operation': operation,
            'revision': revision_number,
            'user_id': attribution.user_id,
            }
        declared = self.options.metadata_fields
        for field, value in attribution.metadata.items():
            if field in declared:
                values[field] = value
            else:
                logger.warning('Dropping undeclared revision metadata %s=%r',
                        field, value)
        try:
            logger.debug('Creating revision of %s#%s: %s', entity_type,
                    entity_id, values)
            result = connection.execute(
                    self.revision_table.insert().values(**values))
            values['id'] = result.inserted_primary_key[0]
            if self.change_table is not None and delta:
                changes = [ self.make_change(values['id'], change)
                            for change in delta ]
                logger.debug('Creating %s revision changes', len(changes))
                connection.execute(self.change_table.insert(), changes)
        except SQLAlchemyError as err:
            logger.error('Revision save error for %s#%s: %s', entity_type,
                    entity_id, err)
            raise PersistenceError('Could not save revision of %s#%s' % (
                entity_type, entity_id)) from err
        return values
