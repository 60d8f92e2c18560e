'''Ambient, operation scoped key-value storage.

A Namespace holds values (such as the id of the user making the current
request) that should be visible to everything running as part of the same
logical operation without being passed explicitly. Scopes are stored in a
ContextVar so they follow threads and asyncio tasks::

    ns = create_namespace('request')
    with ns.run(userId=42):
        ns.get('userId')  # 42
    ns.get('userId')  # None
'''
from contextlib import contextmanager
from contextvars import ContextVar

_namespaces = {}


class Namespace(object):

    def __init__(self, name):
        self.name = name
        self._scope = ContextVar('revtrail.namespace.%s' % name, default=None)

    @contextmanager
    def run(self, **values):
        '''Open a new scope inheriting the current values.'''
        scope = dict(self._scope.get() or {})
        scope.update(values)
        token = self._scope.set(scope)
        try:
            yield self
        finally:
            self._scope.reset(token)

    def get(self, key, default=None):
        scope = self._scope.get()
        if scope is None:
            return default
        return scope.get(key, default)

    def set(self, key, value):
        # copy on write: scopes captured by other tasks are not affected
        scope = dict(self._scope.get() or {})
        scope[key] = value
        self._scope.set(scope)
        return value

    @property
    def active(self):
        return self._scope.get() is not None

    def __repr__(self):
        return '<Namespace %s>' % self.name


def get_namespace(name):
    '''Return the namespace registered under name (None if none exists).'''
    return _namespaces.get(name)


def create_namespace(name):
    '''Return the namespace registered under name, creating it if needed.'''
    ns = _namespaces.get(name)
    if ns is None:
        ns = _namespaces[name] = Namespace(name)
    return ns
