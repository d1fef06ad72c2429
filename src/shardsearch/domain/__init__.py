"""Domain layer - documents, postings and partition commands.

No I/O lives here: documents are immutable values, commands are immutable
messages consumed once by a partition router.
"""

from shardsearch.domain.commands import (
    IndexCommand,
    InfoCommand,
    InfoEntry,
    InfoRangeCommand,
    InfoResponse,
    InitStreamCommand,
    NodeId,
    PartitionCommand,
    PartitionId,
    QueueReplyChannel,
    ReplyChannel,
    StreamBatch,
    StreamCommand,
    StreamEnd,
    StreamReady,
    StreamResult,
)
from shardsearch.domain.model import Document, Posting


__all__ = [
    "Document",
    "IndexCommand",
    "InfoCommand",
    "InfoEntry",
    "InfoRangeCommand",
    "InfoResponse",
    "InitStreamCommand",
    "NodeId",
    "PartitionCommand",
    "PartitionId",
    "Posting",
    "QueueReplyChannel",
    "ReplyChannel",
    "StreamBatch",
    "StreamCommand",
    "StreamEnd",
    "StreamReady",
    "StreamResult",
]
