import pytest

from conftest import FakePage, category_page, product_page, seller_page
from storefront_etl.antibot import BotBlockedError, ParseError
from storefront_etl.crawler import DedupGuard, WorkItemRouter
from storefront_etl.models import Label, WorkItem

DOMAIN = "shop.test"


def _item(url, label, carried=None):
    return WorkItem(url=url, label=label, domain=DOMAIN, carried_data=carried)


@pytest.fixture
def router():
    return WorkItemRouter(DedupGuard())


def test_category_links_are_capped(router):
    urls = [f"https://shop.test/p-{n}/dp/B{n:09d}" for n in range(60)]
    page = category_page("https://shop.test/electronics/", urls)

    result = router.route(_item("https://shop.test/electronics/", Label.CATEGORY), page)

    assert len(result.new_items) == 50
    assert result.record is None
    assert [item.url for item in result.new_items] == urls[:50]
    assert {item.label for item in result.new_items} == {Label.PRODUCT}
    assert {item.domain for item in result.new_items} == {DOMAIN}


def test_category_cap_is_configurable():
    router = WorkItemRouter(DedupGuard(), category_link_cap=3)
    urls = [f"https://shop.test/p-{n}/dp/B{n:09d}" for n in range(10)]
    result = router.route(
        _item("https://shop.test/electronics/", Label.CATEGORY),
        category_page("https://shop.test/electronics/", urls),
    )
    assert len(result.new_items) == 3


def test_product_page_enqueues_seller_with_carried_product(router):
    url = "https://shop.test/widget/dp/B000000001"
    page = product_page(url, "https://shop.test/sp?seller=S1", title="Widget", price="€12,50")

    result = router.route(_item(url, Label.PRODUCT), page)

    assert result.record is None
    (seller_item,) = result.new_items
    assert seller_item.label == Label.SELLER
    assert seller_item.url == "https://shop.test/sp?seller=S1"
    assert seller_item.carried_data == {
        "asin": "B000000001",
        "title": "Widget",
        "brand": "Acme",
        "price": pytest.approx(12.5),
        "currency": "EUR",
    }


def test_product_asin_falls_back_to_item_url(router):
    item = _item("https://shop.test/widget/dp/B000000001", Label.PRODUCT)
    page = product_page("https://shop.test/widget-redirected", "https://shop.test/sp?seller=S1")
    result = router.route(item, page)
    assert result.new_items[0].carried_data["asin"] == "B000000001"


def test_product_without_asin_is_a_parse_error(router):
    page = product_page("https://shop.test/widget", "https://shop.test/sp?seller=S1")
    with pytest.raises(ParseError):
        router.route(_item("https://shop.test/widget", Label.PRODUCT), page)


def test_product_without_seller_link_is_a_parse_error(router):
    url = "https://shop.test/widget/dp/B000000001"
    with pytest.raises(ParseError):
        router.route(_item(url, Label.PRODUCT), product_page(url, None))


def test_seller_page_builds_bundle(router):
    url = "https://shop.test/sp?seller=S1"
    carried = {"asin": "B000000001", "title": "Widget", "brand": "Acme", "price": 12.5, "currency": None}

    result = router.route(_item(url, Label.SELLER, carried), seller_page(url))

    assert result.new_items == []
    bundle = result.record
    assert bundle.seller.seller_id == "S1"
    assert bundle.seller.name == "Acme Trading"
    assert bundle.seller.rating == "4.7"
    assert bundle.seller.location == "Ships from Leipzig, Germany"
    assert bundle.seller.domain == DOMAIN
    assert bundle.seller.enrichment_status == "pending"
    assert bundle.product.asin == "B000000001"
    assert bundle.product.category is None
    assert bundle.listing.id == "S1-B000000001"
    assert bundle.listing.price == 12.5
    assert bundle.listing.currency == "EUR"


def test_seller_page_repeat_pair_yields_nothing(router):
    url = "https://shop.test/sp?seller=S1"
    carried = {"asin": "B000000001"}
    first = router.route(_item(url, Label.SELLER, carried), seller_page(url))
    second = router.route(_item(url, Label.SELLER, carried), seller_page(url))
    assert first.record is not None
    assert second.record is None
    assert second.new_items == []


def test_seller_without_carried_asin_is_a_parse_error(router):
    url = "https://shop.test/sp?seller=S1"
    with pytest.raises(ParseError):
        router.route(_item(url, Label.SELLER), seller_page(url))


def test_block_page_raises_before_extraction(router):
    blocked = FakePage(
        "https://shop.test/errors/validateCaptcha",
        content="<p>Type the characters you see</p>",
    )
    dedup = router.dedup
    with pytest.raises(BotBlockedError):
        router.route(_item("https://shop.test/sp?seller=S1", Label.SELLER, {"asin": "B000000001"}), blocked)
    assert len(dedup) == 0


def test_block_detected_from_content_only(router):
    page = FakePage(
        "https://shop.test/widget/dp/B000000001",
        content="<h4>Enter the characters you see below</h4>",
    )
    with pytest.raises(BotBlockedError):
        router.route(_item("https://shop.test/widget/dp/B000000001", Label.PRODUCT), page)
