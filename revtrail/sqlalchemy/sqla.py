'''Generic sqlalchemy code (not specifically related to revisions).
'''
import json
import uuid
from contextlib import contextmanager

import sqlalchemy
from sqlalchemy import types
from sqlalchemy.orm import scoped_session

from revtrail.diff import json_default

make_uuid = lambda: uuid.uuid4()


class JsonType(types.TypeDecorator):
    '''Store data as JSON serializing on save and unserializing on use.

    Dates and other non JSON values are stored in their string form.
    '''
    impl = types.UnicodeText
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None: # ensure we store nulls in db not json "null"
            return None
        return json.dumps(value, ensure_ascii=False, sort_keys=True,
                default=json_default)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return json.loads(value)


class SQLAlchemyMixin(object):
    def __init__(self, **kw):
        for k, v in kw.items():
            setattr(self, k, v)

    def __repr__(self):
        out = '<%s' % self.__class__.__name__
        mapper = sqlalchemy.inspect(self.__class__)
        for attr in mapper.column_attrs:
            out += ' %s=%r' % (attr.key, getattr(self, attr.key, None))
        return out + '>'


class RevisionSession(object):
    '''Handle setting/getting per call revision options.

    Options are kept in the session's info dictionary (applying to every
    flush until cleared) or in an instance's state info (applying to the next
    flush of that instance only). Instance options override session options.

    Recognised options are no_revision, user_id and revision_metadata.
    '''
    KEY = 'revtrail.options'
    NAMES = ('no_revision', 'user_id', 'revision_metadata')

    @classmethod
    def _check(cls, kw):
        for name in kw:
            if name not in cls.NAMES:
                raise TypeError('Unknown revision call option: %s' % name)

    @classmethod
    def set_options(cls, session, **kw):
        cls._check(kw)
        # session may be a scoped_session registry
        if isinstance(session, scoped_session):
            session = session()
        session.info.setdefault(cls.KEY, {}).update(kw)

    @classmethod
    def clear_options(cls, session):
        if isinstance(session, scoped_session):
            session = session()
        session.info.pop(cls.KEY, None)

    @classmethod
    @contextmanager
    def options(cls, session, **kw):
        '''Apply options to every flush run inside the block.'''
        if isinstance(session, scoped_session):
            session = session()
        previous = session.info.get(cls.KEY)
        if previous is not None:
            previous = dict(previous)
        cls.set_options(session, **kw)
        try:
            yield session
        finally:
            if previous is None:
                session.info.pop(cls.KEY, None)
            else:
                session.info[cls.KEY] = previous

    @classmethod
    def set_instance_options(cls, instance, **kw):
        cls._check(kw)
        sqlalchemy.inspect(instance).info.setdefault(cls.KEY, {}).update(kw)

    @classmethod
    def get_options(cls, instance, session=None):
        '''Merged options for the next flush of instance.

        NB: instance options are consumed by this call.
        '''
        out = dict.fromkeys(cls.NAMES)
        state = sqlalchemy.inspect(instance)
        if session is None:
            session = state.session
        if session is not None:
            out.update(session.info.get(cls.KEY, {}))
        out.update(state.info.pop(cls.KEY, {}))
        return out
