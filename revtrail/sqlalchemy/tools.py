'''Set up and drive revision tracking.

Primarily organized within a `RevisionTracker` object.
'''
import logging
logger = logging.getLogger('revtrail')

import sqlalchemy
from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import Column, ForeignKeyConstraint, Integer, and_
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import attributes, column_property, foreign, relationship

from revtrail.context import create_namespace
from revtrail.errors import SchemaError
from revtrail.options import Options
from revtrail.revision import Operation
from .changeset import RevisionPersister, make_tables, setup_changeset
from .model import Revisioner

UPSERT_DIALECTS = {
    'sqlite': sqlite.insert,
    'postgresql': postgresql.insert,
    }


class RevisionTracker(object):
    '''Record revisions of tracked classes.

    :param registry: the sqlalchemy registry (e.g. ``Base.registry``) of the
        models to track. Revision classes are mapped on it and their tables
        added to its metadata.
    :param bind: engine used for migrations (only needed with
        enable_migration_on_startup).
    :param options: see revtrail.options.Options.
    '''

    def __init__(self, registry, bind=None, **options):
        self.registry = registry
        self.metadata = registry.metadata
        self.bind = bind
        self.options = Options(**options)
        self.fail_hard = False
        self.namespace = None
        if self.options.ambient_namespace_name:
            self.namespace = create_namespace(
                    self.options.ambient_namespace_name)
        self.revision_table, self.change_table = make_tables(self.metadata,
                self.options)
        self.Revision, self.RevisionChange = setup_changeset(registry,
                self.revision_table, self.change_table, self.options)
        self.persister = RevisionPersister(self.revision_table,
                self.change_table, self.options)
        self.revisioners = {}
        self._registered = False

    def register_schemas(self, bind=None):
        '''Finish setting up the revision schema.

        Relates revisions to the user entity if one is configured and, if
        migrations are enabled, creates any missing revision tables. Safe to
        call more than once.

        :return: (Revision class, RevisionChange class or None)
        '''
        if not self._registered:
            if self.options.user_entity_name:
                self._relate_user()
            self._registered = True
        if self.options.enable_migration_on_startup:
            bind = bind if bind is not None else self.bind
            if bind is None:
                raise ValueError('A bind is needed to create revision tables')
            tables = [ t for t in (self.revision_table, self.change_table)
                       if t is not None ]
            logger.info('Ensuring revision tables: %s',
                    ', '.join(t.name for t in tables))
            self.metadata.create_all(bind, tables=tables)
        return self.Revision, self.RevisionChange

    def _find_mapper(self, name):
        for mapper in self.registry.mappers:
            if mapper.class_.__name__ == name:
                return mapper
        raise ValueError('No mapped class named %s' % name)

    def _relate_user(self):
        user_mapper = self._find_mapper(self.options.user_entity_name)
        pkcols = list(user_mapper.local_table.primary_key.columns)
        if len(pkcols) != 1:
            msg = 'User entity %s must have a single primary key column' % \
                    user_mapper.class_.__name__
            raise ValueError(msg)
        user_col = self.revision_table.c.user_id
        self.revision_table.append_constraint(
                ForeignKeyConstraint([user_col], [pkcols[0]]))
        kwargs = dict(self.options.belongs_to_user_options or {})
        kwargs.setdefault('foreign_keys', [user_col])
        sqlalchemy.inspect(self.Revision).add_property('user',
                relationship(user_mapper.class_, **kwargs))

    def enable_hard_failure_mode(self):
        '''Raise MissingAttributionError instead of recording nulls.'''
        self.fail_hard = True

    def track(self, cls, exclude=None):
        '''Record revisions for every insert, update and delete of cls.

        :param exclude: further attribute names to ignore for this class.
        '''
        if cls in self.revisioners:
            return
        mapper = sqlalchemy.inspect(cls)
        if len(mapper.primary_key) > 1:
            msg = 'Do not support revisioning objects with multiple primary keys'
            raise ValueError(msg)
        logger.debug('Enabling revisions on %s', cls.__name__)
        self._add_revision_attribute(mapper)
        if self.options.enable_migration_on_startup:
            try:
                self._ensure_revision_column(mapper.local_table)
            except SchemaError as err:
                logger.warning('Could not ensure revision column on %s: %s',
                        mapper.local_table.name, err)
        revisioner = Revisioner(self,
                self.options.exclude | frozenset(exclude or ()))
        revisioner.listen(cls)
        self._add_revisions_relation(mapper)
        self.revisioners[cls] = revisioner

    def _add_revision_attribute(self, mapper):
        name = self.options.revision_field_name
        table = mapper.local_table
        if name not in table.c:
            table.append_column(Column(name, Integer))
        if not mapper.has_property(name):
            mapper.add_property(name, column_property(table.c[name]))

    def _ensure_revision_column(self, table):
        name = self.options.revision_field_name
        if self.bind is None:
            raise SchemaError('No bind to migrate %s with' % table.name)
        try:
            with self.bind.begin() as connection:
                existing = [ col['name'] for col in
                    sqlalchemy.inspect(connection).get_columns(table.name,
                        schema=table.schema) ]
                if name not in existing:
                    logger.info('Adding revision column %s to %s', name,
                            table.name)
                    op = Operations(MigrationContext.configure(connection))
                    op.add_column(table.name, Column(name, Integer),
                            schema=table.schema)
        except SQLAlchemyError as err:
            raise SchemaError(str(err)) from err

    def _add_revisions_relation(self, mapper):
        if mapper.has_property('revisions') or \
                hasattr(mapper.class_, 'revisions'):
            logger.warning('%s already has a revisions attribute, not adding '
                    'relation', mapper.class_.__name__)
            return
        revision_table = self.revision_table
        mapper.add_property('revisions', relationship(self.Revision,
            primaryjoin=and_(
                foreign(revision_table.c.entity_id) == mapper.primary_key[0],
                revision_table.c.entity_type == mapper.class_.__name__,
                ),
            order_by=[revision_table.c.revision, revision_table.c.id],
            viewonly=True,
            ))

    def upsert(self, session, cls, values, no_revision=False, user_id=None,
            revision_metadata=None):
        '''Insert or update a row of cls in one statement.

        The database decides whether the row exists so nothing is known about
        its previous state: the revision recorded always looks like a creation
        and has revision number 1, even when an existing row was updated.

        :return: a transient instance of cls holding values, its primary key
            and its revision number.
        '''
        mapper = sqlalchemy.inspect(cls)
        table = mapper.local_table
        revisioner = self.revisioners.get(cls)
        instance = cls(**values)
        if revisioner is not None:
            revisioner.before(Operation.UPSERT, mapper, instance, {
                'no_revision': no_revision,
                'user_id': user_id,
                'revision_metadata': revision_metadata,
                })

        state_dict = attributes.instance_dict(instance)
        row = {}
        for prop in mapper.column_attrs:
            if prop.key in state_dict:
                row[prop.columns[0].key] = state_dict[prop.key]

        connection = session.connection(bind_arguments={'mapper': mapper})
        dialect = connection.dialect.name
        if dialect not in UPSERT_DIALECTS:
            raise NotImplementedError('upsert is not supported on %s' % dialect)
        pkcols = list(table.primary_key.columns)
        stmt = UPSERT_DIALECTS[dialect](table).values(row)
        update = dict((key, stmt.excluded[key]) for key in row
                      if key not in table.primary_key.columns)
        if update:
            stmt = stmt.on_conflict_do_update(index_elements=pkcols, set_=update)
        else:
            stmt = stmt.on_conflict_do_nothing(index_elements=pkcols)
        pk_value = connection.execute(stmt.returning(*pkcols)).scalar()
        if pk_value is None:
            pk_value = row.get(pkcols[0].key)
        attributes.set_committed_value(instance,
                mapper.get_property_by_column(pkcols[0]).key, pk_value)

        if revisioner is not None:
            revisioner.after(Operation.UPSERT, mapper, connection, instance)
        return instance
