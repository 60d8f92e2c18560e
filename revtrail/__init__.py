'''
About
=====

revtrail keeps an audit trail of changes to your domain objects. Each time a
tracked object is created, updated, deleted or upserted a 'Revision' row is
written recording a snapshot of the object, a per-object revision number, who
made the change and any extra metadata. Optionally one 'RevisionChange' row is
written per modified field holding the field level diff.

At present the package is provided as an extension to SQLAlchemy.


Copyright and License
=====================

Licensed under the MIT license:

  <http://www.opensource.org/licenses/mit-license.php>


Revisions and Changes
=====================

For each tracked domain object we end up with:

  * The object itself, which gains a `revision` attribute holding the number
    of its most recent revision.
  * Its revisions: immutable snapshots, numbered 1, 2, 3, ... per object.
  * Optionally, for each revision, its changes: one row per modified field.

Revisions are written through the same connection as the change that caused
them so they commit and roll back together. An update that does not really
change anything (ignoring excluded attributes) produces no revision; deletion
always does.

To give a flavour::

    tracker = RevisionTracker(Base.registry, enable_change_log=True)
    Revision, RevisionChange = tracker.register_schemas()
    tracker.track(Project)

    project = Project(name='a', version=1)
    session.add(project)
    session.commit()
    assert project.revision == 1

    project.name = 'b'
    session.commit()
    assert project.revision == 2
    assert [ c.path for c in project.revisions[-1].changes ] == ['name']

Attribution
-----------

The user responsible for a change, and arbitrary metadata, can be passed
explicitly::

    with RevisionSession.options(session, user_id=42):
        session.commit()

or made ambient for the current request using a named context namespace::

    ns = create_namespace('request')
    with ns.run(userId=42):
        ...

Code in Action
--------------

See::

    revtrail/test/demo.py
    revtrail/test/test_tracker.py
'''
__version__ = '0.1.0'
__description__ = 'Revision and change tracking for SQLAlchemy models.'
