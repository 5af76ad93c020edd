from fnzo.events import CategorySync, CategoryUpdated, EventBus, EventName
from fnzo.models import Category


def _category(name="Food"):
    return Category(id="c1", name=name, kind="expense")


def test_publish_delivers_once_to_each_subscriber_in_order():
    bus = EventBus()
    seen = []
    bus.subscribe(EventName.CATEGORY_SYNC, lambda p: seen.append(("a", p.reason)))
    bus.subscribe(EventName.CATEGORY_SYNC, lambda p: seen.append(("b", p.reason)))
    assert bus.publish(EventName.CATEGORY_SYNC, CategorySync("rename")) == 2
    assert seen == [("a", "rename"), ("b", "rename")]


def test_failing_handler_does_not_stop_delivery():
    bus = EventBus()
    seen = []

    def boom(_payload):
        raise RuntimeError("handler bug")

    bus.subscribe(EventName.TEMPLATE_CREATED, boom)
    bus.subscribe(EventName.TEMPLATE_CREATED, seen.append)
    bus.publish(EventName.TEMPLATE_CREATED, "payload")
    assert seen == ["payload"]


def test_unsubscribe_and_events_are_independent():
    bus = EventBus()
    seen = []
    unsubscribe = bus.subscribe(EventName.CATEGORY_UPDATED, seen.append)
    assert bus.publish(EventName.TEMPLATE_DELETED, "x") == 0

    unsubscribe()
    unsubscribe()  # idempotent
    assert bus.subscriber_count(EventName.CATEGORY_UPDATED) == 0
    assert bus.publish(EventName.CATEGORY_UPDATED, "y") == 0
    assert seen == []


def test_category_updated_reports_renames():
    assert CategoryUpdated(_category("Food"), old_name="Groceries").renamed
    assert not CategoryUpdated(_category("Food")).renamed
    assert not CategoryUpdated(_category("Food"), old_name="Food").renamed
