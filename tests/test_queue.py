import threading

import pytest

from storefront_etl.antibot import BotBlockedError, ErrorClass, ParseError, TransientFetchError
from storefront_etl.crawler import MemoryWorkQueue
from storefront_etl.models import Label, WorkItem


def _item(url="https://shop.test/dp/B000000001", label=Label.PRODUCT, **kwargs):
    return WorkItem(url=url, label=label, domain="shop.test", **kwargs)


def test_add_skips_identical_urls():
    queue = MemoryWorkQueue()
    assert queue.add(_item()) is True
    assert queue.add(_item()) is False
    assert queue.stats()["pending"] == 1


def test_seller_items_are_keyed_by_url_and_carried_asin():
    queue = MemoryWorkQueue()
    seller_url = "https://shop.test/sp?seller=S1"
    first = _item(seller_url, Label.SELLER, carried_data={"asin": "B000000001"})
    second = _item(seller_url, Label.SELLER, carried_data={"asin": "B000000002"})
    assert first.unique_key != second.unique_key
    assert queue.add(first) is True
    assert queue.add(second) is True
    assert queue.add(_item(seller_url, Label.SELLER, carried_data={"asin": "B000000001"})) is False


def test_take_returns_none_when_drained():
    queue = MemoryWorkQueue()
    queue.add(_item())
    item = queue.take()
    assert item.url == "https://shop.test/dp/B000000001"
    queue.mark_done(item)
    assert queue.take() is None
    assert queue.drained
    assert queue.stats()["completed"] == 1


def test_transient_failures_retry_up_to_ceiling():
    queue = MemoryWorkQueue(max_retries=2)
    queue.add(_item())

    attempts = []
    while True:
        item = queue.take()
        if item is None:
            break
        attempts.append(item.retry_count)
        queue.mark_failed(item, TransientFetchError("timeout"))

    assert attempts == [0, 1, 2]
    assert len(queue.failures) == 1
    assert queue.failures[0].error_class == ErrorClass.TRANSIENT
    assert queue.failures[0].item.retry_count == 2


@pytest.mark.parametrize("error", [BotBlockedError("captcha"), ParseError("no seller link")])
def test_terminal_failures_are_not_retried(error):
    queue = MemoryWorkQueue(max_retries=3)
    queue.add(_item())
    item = queue.take()
    assert queue.mark_failed(item, error) is False
    assert queue.take() is None
    assert queue.failures[0].error_class == error.error_class


def test_take_waits_for_in_flight_items_to_produce_work():
    queue = MemoryWorkQueue()
    queue.add(_item("https://shop.test/electronics/", Label.CATEGORY))
    parent = queue.take()

    taken = []
    waiter = threading.Thread(target=lambda: taken.append(queue.take(timeout=5)))
    waiter.start()

    queue.add(_item())
    queue.mark_done(parent)
    waiter.join(timeout=5)

    assert not waiter.is_alive()
    assert taken[0].url == "https://shop.test/dp/B000000001"


def test_take_timeout_while_items_in_flight():
    queue = MemoryWorkQueue()
    queue.add(_item())
    queue.take()
    assert queue.take(timeout=0.05) is None


def test_close_releases_blocked_takers():
    queue = MemoryWorkQueue()
    queue.add(_item())
    queue.add(_item("https://shop.test/dp/B000000002"))
    queue.take()

    queue.close()
    assert queue.take() is None
    assert queue.stats()["pending"] == 1


def test_work_item_round_trips_through_dict():
    item = _item("https://shop.test/sp?seller=S1", Label.SELLER, carried_data={"asin": "B000000001"}, retry_count=2)
    restored = WorkItem.from_dict(item.to_dict())
    assert restored == item
    assert restored.carried_data == {"asin": "B000000001"}
    assert item.with_retry().retry_count == 3


def test_work_item_rejects_negative_retry_count():
    with pytest.raises(ValueError):
        _item(retry_count=-1)
