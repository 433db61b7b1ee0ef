"""Server side of queuewarden.

- **resources**: prerequisite resources owned by a workspace (cache, RBAC)
- **pod**: execution pod and its entrypoint script
- **workspace**: workspace reconciler (health, prerequisites, run queue)
- **run**: run reconciler (scheduling conditions, pod creation, completion)
- **manager**: keyed work queues fed by store watches
"""
