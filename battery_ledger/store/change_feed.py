"""DynamoDB Streams üzerinden değişiklik akışı (change feed) aboneliği.

Abonelik açıldığında önce tablonun mevcut hali tek bir "ilk snapshot" olarak
iletilir, ardından stream kayıtları commit sırasıyla artımlı snapshot'lar
halinde gelir. Dinleyici `is_initial` bayrağıyla başlangıç gürültüsünü
bastırabilir.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from botocore.exceptions import BotoCoreError, ClientError

from battery_ledger.store.serialization import deserialize_item

logger = logging.getLogger(__name__)


class ChangeType(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


_EVENT_TYPES = {
    "INSERT": ChangeType.ADDED,
    "MODIFY": ChangeType.MODIFIED,
    "REMOVE": ChangeType.REMOVED,
}


@dataclass
class DocumentChange:
    type: ChangeType
    key: dict
    new_image: Optional[dict] = None
    old_image: Optional[dict] = None

    @property
    def document(self) -> Optional[dict]:
        """Değişikliğin güncel hali; silinen dokümanlar için eski hali."""
        if self.type == ChangeType.REMOVED:
            return self.old_image if self.old_image is not None else self.new_image
        return self.new_image


@dataclass
class FeedSnapshot:
    changes: list[DocumentChange] = field(default_factory=list)
    is_initial: bool = False

    @property
    def documents(self) -> list[dict]:
        return [
            c.new_image for c in self.changes
            if c.type != ChangeType.REMOVED and c.new_image is not None
        ]


class ChangeFeedSubscription:
    """Tek bir tablo için stream dinleyicisi.

    predicate verilirse abonelik bir sorgu gibi davranır: predicate'e giren
    doküman ADDED, çıkan doküman REMOVED olarak iletilir.
    """

    def __init__(
        self,
        table_name: str,
        listener: Callable[[FeedSnapshot], None],
        dynamodb_client: Any,
        streams_client: Any,
        predicate: Optional[Callable[[dict], bool]] = None,
        poll_interval: float = 1.0,
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> None:
        self.table_name = table_name
        self._listener = listener
        self._dynamodb = dynamodb_client
        self._streams = streams_client
        self._predicate = predicate
        self._poll_interval = poll_interval
        self._on_error = on_error

        self._stream_arn: Optional[str] = None
        self._key_attrs: list[str] = []
        self._iterators: dict[str, str] = {}
        self._known_shards: set[str] = set()
        self._opened = False
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # --- Yaşam döngüsü ---

    def start(self) -> None:
        self._thread = threading.Thread(
            target=self._run, name=f"feed-{self.table_name}", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def _run(self) -> None:
        try:
            if not self._opened:
                self.open()
            while not self._stop.is_set():
                self.poll_once()
                self._stop.wait(self._poll_interval)
        except (ClientError, BotoCoreError) as e:
            logger.error("Change feed hatası [%s]: %s", self.table_name, e)
            self._stop.set()
            if self._on_error:
                self._on_error(e)

    # --- Abonelik ---

    def open(self) -> None:
        """Stream iterator'larını konumlandırır ve ilk snapshot'ı iletir.

        Iterator'lar taramadan önce LATEST'e alınır; tarama sırasında gelen
        yazmalar hem snapshot'ta hem de ilk artımlı teslimatta görünebilir.
        start() öncesinde senkron çağrılabilir; bu durumda thread yeniden açmaz.
        """
        table = self._dynamodb.describe_table(TableName=self.table_name)["Table"]
        self._stream_arn = table.get("LatestStreamArn")
        if not self._stream_arn:
            raise ValueError(f"Tabloda stream etkin değil: {self.table_name}")
        self._key_attrs = [k["AttributeName"] for k in table["KeySchema"]]

        for shard in self._list_shards():
            self._known_shards.add(shard["ShardId"])
            if "EndingSequenceNumber" in shard.get("SequenceNumberRange", {}):
                continue
            self._iterators[shard["ShardId"]] = self._shard_iterator(shard["ShardId"], "LATEST")

        changes = []
        for document in self._scan():
            if self._predicate and not self._predicate(document):
                continue
            key = {k: document[k] for k in self._key_attrs if k in document}
            changes.append(DocumentChange(ChangeType.ADDED, key, new_image=document))

        self._opened = True
        logger.info("Change feed açıldı: %s (%d doküman)", self.table_name, len(changes))
        self._deliver(FeedSnapshot(changes=changes, is_initial=True))

    def poll_once(self) -> int:
        """Tüm shard'lardan bir tur kayıt okur, değişiklik varsa iletir."""
        changes: list[DocumentChange] = []
        closed = False
        for shard_id, iterator in list(self._iterators.items()):
            response = self._streams.get_records(ShardIterator=iterator, Limit=1000)
            for record in response.get("Records", []):
                change = self._to_change(record)
                if change is not None:
                    changes.append(change)
            next_iterator = response.get("NextShardIterator")
            if next_iterator:
                self._iterators[shard_id] = next_iterator
            else:
                del self._iterators[shard_id]
                closed = True

        if closed:
            self._discover_child_shards()

        if changes:
            self._deliver(FeedSnapshot(changes=changes))
        return len(changes)

    def _deliver(self, snapshot: FeedSnapshot) -> None:
        try:
            self._listener(snapshot)
        except Exception:
            logger.exception("Change feed dinleyici hatası [%s]", self.table_name)

    def _to_change(self, record: dict) -> Optional[DocumentChange]:
        payload = record.get("dynamodb", {})
        key = deserialize_item(payload.get("Keys")) or {}
        new_image = deserialize_item(payload.get("NewImage"))
        old_image = deserialize_item(payload.get("OldImage"))

        if self._predicate is None:
            change_type = _EVENT_TYPES.get(record.get("eventName", ""))
            if change_type is None:
                return None
            return DocumentChange(change_type, key, new_image=new_image, old_image=old_image)

        in_new = new_image is not None and self._predicate(new_image)
        in_old = old_image is not None and self._predicate(old_image)
        if in_new and in_old:
            return DocumentChange(ChangeType.MODIFIED, key, new_image=new_image, old_image=old_image)
        if in_new:
            return DocumentChange(ChangeType.ADDED, key, new_image=new_image, old_image=old_image)
        if in_old:
            return DocumentChange(ChangeType.REMOVED, key, new_image=new_image, old_image=old_image)
        return None

    # --- Stream yardımcıları ---

    def _list_shards(self) -> list[dict]:
        shards: list[dict] = []
        kwargs: dict = {"StreamArn": self._stream_arn}
        while True:
            description = self._streams.describe_stream(**kwargs)["StreamDescription"]
            shards.extend(description.get("Shards", []))
            last = description.get("LastEvaluatedShardId")
            if not last:
                return shards
            kwargs["ExclusiveStartShardId"] = last

    def _shard_iterator(self, shard_id: str, iterator_type: str) -> str:
        response = self._streams.get_shard_iterator(
            StreamArn=self._stream_arn,
            ShardId=shard_id,
            ShardIteratorType=iterator_type,
        )
        return response["ShardIterator"]

    def _discover_child_shards(self) -> None:
        for shard in self._list_shards():
            shard_id = shard["ShardId"]
            if shard_id in self._known_shards:
                continue
            self._known_shards.add(shard_id)
            self._iterators[shard_id] = self._shard_iterator(shard_id, "TRIM_HORIZON")
            logger.debug("Yeni shard izleniyor: %s", shard_id)

    def _scan(self) -> list[dict]:
        documents: list[dict] = []
        kwargs: dict = {"TableName": self.table_name, "ConsistentRead": True}
        while True:
            response = self._dynamodb.scan(**kwargs)
            documents.extend(deserialize_item(item) for item in response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return documents
            kwargs["ExclusiveStartKey"] = last_key
