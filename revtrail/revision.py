'''Revision numbering.'''


class Operation(object):
    CREATE = 'create'
    UPDATE = 'update'
    DESTROY = 'destroy'
    UPSERT = 'upsert'

    ALL = (CREATE, UPDATE, DESTROY, UPSERT)


def is_revision_worthy(operation, delta):
    '''Deletion always deserves a revision, anything else only if it changed
    something.'''
    return operation == Operation.DESTROY or bool(delta)


def next_revision(previous, operation, delta):
    '''Return (revision number, worthy) for a mutation.

    :param previous: the object's current revision number (None counts as 0).
    '''
    worthy = is_revision_worthy(operation, delta)
    if worthy:
        return (previous or 0) + 1, True
    return previous, False
