"""Revisioning for sqlalchemy model objects.

A Revisioner hooks into the mapper level flush events of a tracked class. For
each insert, update and delete it runs in two phases:

  * before: snapshot the object, diff it against its previous state, decide
    whether the change deserves a revision and if so bump the object's
    revision number (which is then written along with the object itself).
    The outcome is stashed on the instance state.
  * after: still inside the flush, write the Revision (and RevisionChange)
    rows through the flush connection.

Any error in either phase propagates out of the flush so the whole
transaction is rolled back and no audit row survives a failed change.
"""
import logging
logger = logging.getLogger('revtrail')

from sqlalchemy import event, inspect
from sqlalchemy.orm import attributes

from revtrail.attribution import resolve_attribution
from revtrail.diff import compute_delta, filter_snapshot
from revtrail.revision import Operation, next_revision
from .sqla import RevisionSession

CONTEXT_KEY = 'revtrail.context'


class State(object):
    SKIPPED = 'skipped'
    WORTHY = 'worthy'
    UNWORTHY = 'unworthy'


def column_keys(mapper):
    return [ prop.key for prop in mapper.column_attrs ]


def snapshot(instance, keys):
    # expired object attributes and also deferred cols might not be in the
    # dict. force them to load by using getattr().
    return dict((key, getattr(instance, key)) for key in keys)


def loaded_snapshot(instance, keys):
    '''Snapshot of attributes already present on the instance (no loading).'''
    state_dict = attributes.instance_dict(instance)
    return dict((key, state_dict[key]) for key in keys if key in state_dict)


def previous_snapshot(instance, keys):
    '''Values of the attributes as last loaded from / written to the db.'''
    out = {}
    for key in keys:
        hist = attributes.get_history(instance, key)
        if hist.deleted:
            out[key] = hist.deleted[0]
        elif hist.unchanged:
            out[key] = hist.unchanged[0]
    return out


def touched_keys(instance, keys):
    return [ key for key in keys
             if attributes.get_history(instance, key).has_changes() ]


def committed_value(instance, key):
    hist = attributes.get_history(instance, key)
    if hist.deleted:
        return hist.deleted[0]
    if hist.unchanged:
        return hist.unchanged[0]
    return None


class Revisioner(object):
    '''Revision a tracked class.

    :param tracker: the owning RevisionTracker (options, persister,
        namespace and hard failure flag come from it).
    :param exclude: attribute names ignored when diffing and snapshotting.
    '''

    def __init__(self, tracker, exclude):
        self.tracker = tracker
        self.options = tracker.options
        self.exclude = frozenset(exclude) | {self.options.revision_field_name}

    def listen(self, cls):
        event.listen(cls, 'before_insert', self.before_insert, propagate=True)
        event.listen(cls, 'before_update', self.before_update, propagate=True)
        event.listen(cls, 'before_delete', self.before_delete, propagate=True)
        event.listen(cls, 'after_insert', self.after_insert, propagate=True)
        event.listen(cls, 'after_update', self.after_update, propagate=True)
        event.listen(cls, 'after_delete', self.after_delete, propagate=True)
        # load the value being replaced on set, even for expired attributes,
        # so updates can always be diffed against it
        for key in column_keys(inspect(cls)):
            if key not in self.exclude:
                event.listen(getattr(cls, key), 'set', self.on_set,
                        active_history=True)

    def on_set(self, target, value, oldvalue, initiator):
        '''No-op: registered only so the set event runs with active_history.'''

    def capture(self, operation, mapper, instance):
        '''Return (previous, current, touched keys) for a mutation.'''
        keys = column_keys(mapper)
        if operation in (Operation.CREATE, Operation.UPSERT):
            # nothing is known about any previous row
            current = loaded_snapshot(instance, keys)
            return {}, current, list(current)
        if operation == Operation.DESTROY:
            current = snapshot(instance, keys)
            return current, current, keys
        if self.options.enable_compression:
            keys = touched_keys(instance, keys)
        current = snapshot(instance, keys)
        return previous_snapshot(instance, keys), current, keys

    def before(self, operation, mapper, instance, options=None):
        state = inspect(instance)
        if options is None:
            options = RevisionSession.get_options(instance)
        if options.get('no_revision'):
            logger.debug('no_revision set, not revisioning %s', instance)
            state.info[CONTEXT_KEY] = {'state': State.SKIPPED}
            return

        rev_key = self.options.revision_field_name
        if operation in (Operation.CREATE, Operation.UPSERT):
            previous_revision = None
        else:
            previous_revision = committed_value(instance, rev_key)

        previous, current, touched = self.capture(operation, mapper, instance)
        # disallow changing the revision by hand
        if operation != Operation.DESTROY and \
                getattr(instance, rev_key) != previous_revision:
            setattr(instance, rev_key, previous_revision)

        delta = compute_delta(previous, current, self.exclude,
                self.options.strict_diff)
        logger.debug('%s %s delta: %s', operation, instance, delta)

        number, worthy = next_revision(previous_revision, operation, delta)
        attribution = resolve_attribution(
                user_id=options.get('user_id'),
                metadata=options.get('revision_metadata'),
                namespace=self.tracker.namespace,
                options=self.options,
                fail_hard=self.tracker.fail_hard,
                operation=operation,
                previous_revision=previous_revision,
                worthy=worthy,
                )
        if worthy:
            if operation == Operation.DESTROY:
                # the row is going away, only keep the value on the instance
                attributes.set_committed_value(instance, rev_key, number)
            else:
                setattr(instance, rev_key, number)
        state.info[CONTEXT_KEY] = {
            'state': State.WORTHY if worthy else State.UNWORTHY,
            'delta': delta,
            'revision': number,
            'attribution': attribution,
            'touched': touched,
            }

    def after(self, operation, mapper, connection, instance):
        '''Persist the revision decided on in before().

        :return: the saved revision values or None if nothing was saved.
        '''
        context = inspect(instance).info.pop(CONTEXT_KEY, None)
        if context is None or context['state'] != State.WORTHY:
            logger.debug('%s %s: no revision', operation, instance)
            return None
        document = filter_snapshot(
                loaded_snapshot(instance, context['touched']), self.exclude)
        entity_id = mapper.primary_key_from_instance(instance)[0]
        return self.tracker.persister.persist(connection, operation,
                mapper.class_.__name__, entity_id, context['revision'],
                document, context['delta'], context['attribution'])

    def before_insert(self, mapper, connection, instance):
        self.before(Operation.CREATE, mapper, instance)

    def before_update(self, mapper, connection, instance):
        self.before(Operation.UPDATE, mapper, instance)

    def before_delete(self, mapper, connection, instance):
        self.before(Operation.DESTROY, mapper, instance)

    def after_insert(self, mapper, connection, instance):
        self.after(Operation.CREATE, mapper, connection, instance)

    def after_update(self, mapper, connection, instance):
        self.after(Operation.UPDATE, mapper, connection, instance)

    def after_delete(self, mapper, connection, instance):
        self.after(Operation.DESTROY, mapper, connection, instance)
