'''Exceptions raised while recording revisions.'''


class RevisionError(Exception):
    pass


class MissingAttributionError(RevisionError):
    '''Required user or metadata missing while running in hard failure mode.'''


class PersistenceError(RevisionError):
    '''A Revision or RevisionChange row could not be written.

    Raised from inside the flush so the mutation that triggered it fails as
    well.
    '''


class SchemaError(RevisionError):
    '''The revision column or tables could not be ensured in the database.'''
