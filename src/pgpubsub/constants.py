"""Shared constants for message statuses, channels and metric labels.

States (messages.status):
- ``new``: Published and not yet delivered; the only claimable state.
- ``processing``: Legacy in-flight marker. Kept in the enum so rows written
  by older deployments stay readable; the delivery engine never writes it.
- ``processed``: The consumer callback succeeded and the claim committed.

Delivery sources (metric label ``source``):
- ``backlog``: Found by the drain query when a subscription starts.
- ``notification``: Announced on the LISTEN/NOTIFY channel afterwards.
"""

STATUS_NEW = "new"
STATUS_PROCESSING = "processing"
STATUS_PROCESSED = "processed"

MESSAGE_STATUSES = (STATUS_NEW, STATUS_PROCESSING, STATUS_PROCESSED)

DEFAULT_NOTIFY_CHANNEL = "new_message"

SOURCE_BACKLOG = "backlog"
SOURCE_NOTIFICATION = "notification"
