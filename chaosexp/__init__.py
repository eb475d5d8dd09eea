"""
chaosexp module

This module creates, records and destroys chaos experiments. An experiment is
one fault-injection action (burn cpu, kill a process, delay the network, ...)
applied to a target and scope with concrete flag values, for example::

    chaosexp create cpu host fullload --cpu-percent 60 --timeout 10

This module contains:
 - the action registry and the flags each action accepts (actions directory,
   flags.py)
 - the experiment model and its validation (model.py)
 - the experiment store (store.py)
 - the create and destroy commands (create.py, destroy.py)
 - channels on which executors run their commands: local or over ssh with
   Python Fabric (execute directory)
 - the command line (cli.py)

Creating an experiment is a strictly sequential affair:

1. The action's flags are bound to the command line and resolved.
2. An experiment model is built. A malformed timeout stops here.
3. The model is recorded with status 'Created'. The store assigns the uid.
4. The action's executor runs the experiment and reports an outcome.
5. The record is moved to 'Success' or 'Error'.
6. If the experiment has a timeout, a detached process is started that
   destroys the experiment once the timeout expires.

The record is never rolled back. An experiment whose execution failed keeps
its uid and its 'Error' status.

Things to consider when adding actions:
1. Executors report failure through the Response they return. An exception
   escaping an executor is turned into a failed Response.
2. Every action accepts a 'timeout' flag whether or not it declares one.
"""
