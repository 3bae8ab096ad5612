"""Tests for the per-site adapters, run against small HTML fixtures."""

import json

import pytest

from conftest import make_image_bytes
from motosync.extraction import extract
from motosync.models import CandidateRef
from motosync.sources import SOURCES, get_source
from motosync.sources.husqvarna import HusqvarnaAdapter, parse_headline
from motosync.sources.ktm import KtmAdapter
from motosync.sources.kymco import KymcoAdapter
from motosync.sources.moto_it import MotoItAdapter, listing_page_url
from motosync.sources.voge import VogeAdapter


def test_registry_keys():
    """Test that every source is registered under its command-line name."""
    assert set(SOURCES) == {"ktm", "husqvarna", "kymco", "voge", "moto-it"}
    with pytest.raises(KeyError):
        get_source("ducati")


class TestKtm:
    """KTM model site."""

    MODELS_HTML = """
    <nav>
      <a href="/it-it/models.html">Tutti</a>
      <a href="/it-it/models/naked-bike.html">Naked</a>
      <a href="/it-it/models/motocross.html">Motocross</a>
      <a href="/it-it/models/naked-bike.html">Naked (dup)</a>
      <a href="/it-it/models/motocross/4-tempi/2026-ktm-450-sx-f.html">450 SX-F</a>
    </nav>
    """

    def test_category_links(self, offline_session):
        """Test that only first-level /models/ pages are categories."""
        adapter = KtmAdapter(session=offline_session)

        links = adapter.category_links(self.MODELS_HTML, "https://www.ktm.com/it-it/models.html")

        assert links == [
            "https://www.ktm.com/it-it/models/naked-bike.html",
            "https://www.ktm.com/it-it/models/motocross.html",
        ]

    def test_item_links(self, offline_session):
        """Test that only deeper /models/ pages are items."""
        adapter = KtmAdapter(session=offline_session)

        links = adapter.item_links(self.MODELS_HTML, "https://www.ktm.com/it-it/models/motocross.html")

        assert links == ["https://www.ktm.com/it-it/models/motocross/4-tempi/2026-ktm-450-sx-f.html"]

    @pytest.mark.parametrize("url,category", [
        ("https://www.ktm.com/it-it/models/motocross/4-tempi/2026-ktm-450-sx-f.html", "cross"),
        ("https://www.ktm.com/it-it/models/enduro/2026-ktm-300-exc.html", "enduro"),
        ("https://www.ktm.com/it-it/models/electric/ktm-sx-e-5.html", "cross"),
        ("https://www.ktm.com/it-it/models/electric/ktm-freeride-e.html", "enduro"),
        ("https://www.ktm.com/it-it/models/naked-bike/2026-ktm-990-duke.html", "strada"),
    ])
    def test_category_mapping(self, offline_session, url, category):
        """Test the URL to category table."""
        assert KtmAdapter(session=offline_session).category_of(url) == category

    def test_price_regex_fallback(self, offline_session):
        """Test that the body is scanned when the price element is missing."""
        adapter = KtmAdapter(session=offline_session)
        html = """
        <h1 class="priceinfo__headline">2026 KTM 390 DUKE</h1>
        <script>window.dataLayer = [{"price": "5990"}]</script>
        <img src="https://media.ktm.com/PHO_STAGE_390duke.jpg">
        """

        fields = adapter.extract_fields(html, CandidateRef(url="https://www.ktm.com/it-it/models/naked-bike/x.html"))

        assert fields.price == 5990
        assert fields.model == "390 DUKE"


class TestHusqvarna:
    """Husqvarna model site."""

    @pytest.mark.parametrize("headline,url,expected", [
        ("Norden 901 Expedition 2026", "https://h/models/travel/norden.html", (2026, "Norden 901 Expedition")),
        ("Svartpilen 401 | 2025", "https://h/models/naked/sp.html", (2025, "Svartpilen 401")),
        ("Vitpilen 801", "https://h/models/naked/vitpilen-801-2026.html", (2026, "Vitpilen 801")),
        ("FE 350", "https://h/models/enduro/fe-350.html", (None, "FE 350")),
    ])
    def test_parse_headline(self, headline, url, expected):
        """Test the year in the headline with the URL as fallback."""
        assert parse_headline(headline, url) == expected

    def test_images_stage_first_and_no_mobile(self, offline_session):
        """Test image order and the mobile/studio exclusions."""
        adapter = HusqvarnaAdapter(session=offline_session)
        html = """
        <img src="https://media.husqvarna.com/PHO_BIKE_DET_fe350_action.jpg">
        <img src="https://media.husqvarna.com/PHO_BIKE_DET_fe350_engine.jpg">
        <picture>
          <source srcset="https://media.husqvarna.com/PHO_STAGE_fe350_MOBILE.jpg 1x">
          <source srcset="https://media.husqvarna.com/PHO_STAGE_fe350.jpg 1x">
        </picture>
        <img src="https://media.husqvarna.com/PHO_BIKE_90_fe350.png">
        """

        images = adapter.extract_images(html, CandidateRef(url="https://h/models/enduro/fe-350.html"))

        assert images == [
            "https://media.husqvarna.com/PHO_STAGE_fe350.jpg",
            "https://media.husqvarna.com/PHO_BIKE_DET_fe350_action.jpg",
        ]

    def test_category_mapping(self, offline_session):
        """Test electric and kids models map to cross."""
        adapter = HusqvarnaAdapter(session=offline_session)
        assert adapter.category_of("https://h/it-it/models/electric/ee-5.html") == "cross"
        assert adapter.category_of("https://h/it-it/models/travel/norden.html") == "strada"

    def test_request_headers_do_not_leak(self, offline_session, monkeypatch):
        """Test that per-request headers never stick to the shared consent cookie."""
        sent = []

        def fake_fetch_html(url, headers=None, session=None, allowed_domains=None):
            sent.append(headers)
            return ""

        monkeypatch.setattr("motosync.sources.base.fetch_html", fake_fetch_html)
        adapter = HusqvarnaAdapter(session=offline_session)

        adapter.fetch("https://www.husqvarna-motorcycles.com/it-it/models.html", headers={"X-Test": "1"})
        HusqvarnaAdapter(session=offline_session).fetch("https://www.husqvarna-motorcycles.com/it-it/models.html")

        assert sent == [
            {"Cookie": "onetrust-policy=accepted", "X-Test": "1"},
            {"Cookie": "onetrust-policy=accepted"},
        ]
        with pytest.raises(TypeError):
            adapter.extra_headers["X-Test"] = "1"


class TestKymco:
    """KYMCO scooter site with pixel classification."""

    DETAIL_HTML = """
    <html><head><title>Agility 125 - KYMCO</title></head><body>
      <h1>Agility 125</h1>
      <div style="background-image: url('https://kymco.it/wp-content/uploads/agility-city.jpg')"></div>
      <div style="background-image: url('https://kymco.it/wp-content/uploads/agility-white.jpg')"></div>
      <div style="background-image: url('https://kymco.it/wp-content/uploads/agility-logo.jpg')"></div>
      <div style="background-image: url('https://kymco.it/media/schede/imm/agility.jpg')"></div>
      <div style="background-image: url('https://kymco.it/wp-content/uploads/agility-banner.png')"></div>
      <p>Prezzo € 2.390,00 f.c.</p>
      <table><tr><td>Cilindrata: 125 cc</td></tr></table>
    </body></html>
    """

    @pytest.fixture
    def adapter(self, offline_session):
        adapter = KymcoAdapter(session=offline_session)
        pixels = {
            "https://kymco.it/wp-content/uploads/agility-city.jpg": make_image_bytes((60, 80, 100)),
            "https://kymco.it/wp-content/uploads/agility-white.jpg": make_image_bytes((255, 255, 255)),
        }
        adapter.fetch_image = lambda url: (pixels[url], "image/jpeg")
        adapter.classifier._fetch_bytes = adapter.fetch_image
        return adapter

    def test_item_links(self, adapter):
        """Test that only underscore product pages are items, without trailing slash."""
        html = """
        <a href="https://kymco.it/Prodotti/_AGILITY125/">Agility</a>
        <a href="/Prodotti/_PEOPLE-S/">People S</a>
        <a href="/Prodotti/agility-colori/">Colori</a>
        <a href="https://kymco.it/Prodotti/_AGILITY125">Agility (dup)</a>
        """

        assert adapter.item_links(html, "https://kymco.it/prodotti_categorie/scooter/") == [
            "https://kymco.it/Prodotti/_AGILITY125",
            "https://kymco.it/Prodotti/_PEOPLE-S",
        ]

    def test_extract_keeps_action_images_only(self, adapter):
        """Test that pixel-detected studio shots are dropped."""
        item = extract(adapter, self.DETAIL_HTML, CandidateRef(url="https://kymco.it/Prodotti/_AGILITY125"))

        assert item is not None
        assert item.images == ["https://kymco.it/wp-content/uploads/agility-city.jpg"]
        assert item.price == 2390
        assert item.displacement == 125
        assert item.category == "scooter"

    def test_not_found_page_rejected(self, adapter):
        """Test that a 404 page is rejected."""
        html = "<html><head><title>Pagina non trovata</title></head><body><h1>Oops</h1></body></html>"

        assert extract(adapter, html, CandidateRef(url="https://kymco.it/Prodotti/_GONE")) is None

    def test_spec_list_wins_over_text(self, adapter):
        """Test that a labelled spec row is read before the free-text price."""
        html = """
        <html><head><title>People S 150 - KYMCO</title></head><body>
          <h1>People S 150</h1>
          <p>Kit accessori Touring € 1.290,00</p>
          <dl><dt>Prezzo</dt><dd>€ 2.490,00</dd><dt>Cilindrata</dt><dd>163 cc</dd></dl>
        </body></html>
        """

        fields = adapter.extract_fields(html, CandidateRef(url="https://kymco.it/Prodotti/_PEOPLE-S"))

        assert fields.price == 2490
        assert fields.displacement == 163


class TestVoge:
    """VOGE site via the WordPress pages API."""

    API_BODY = json.dumps([
        {"id": 1, "slug": "valico-525dsx", "link": "https://vogeitaly.it/valico-525dsx/",
         "title": {"rendered": "Valico 525DSX"}},
        {"id": 2, "slug": "sfida-sr4-max", "link": "https://vogeitaly.it/sfida-sr4-max/",
         "title": {"rendered": "SFIDA SR4 MAX"}},
        {"id": 3, "slug": "privacy-policy", "link": "https://vogeitaly.it/privacy-policy/",
         "title": {"rendered": "Privacy Policy"}},
        {"id": 4, "slug": "home", "link": "https://vogeitaly.it/", "title": {"rendered": "Home"}},
    ])

    DETAIL_HTML = """
    <html><head><title>Valico 525DSX – Voge Italia</title></head><body>
      <h1>VOGE Valico 525DSX</h1>
      <img class="rev-slidebg" src="https://vogeitaly.it/wp-content/uploads/valico-hero.jpg">
      <a href="https://vogeitaly.it/wp-content/uploads/valico-1.jpg">
        <img class="vc_single_image-img" src="https://vogeitaly.it/wp-content/uploads/valico-1-300x200.jpg"></a>
      <a href="https://vogeitaly.it/wp-content/uploads/valico-estudio.jpg">
        <img class="vc_single_image-img" src="https://vogeitaly.it/wp-content/uploads/valico-estudio-300x200.jpg"></a>
      <a href="https://vogeitaly.it/trofeo-525acx/">
        <img class="vc_single_image-img" src="https://vogeitaly.it/wp-content/uploads/trofeo.jpg"></a>
      <div class="wpb_wrapper">
        <p>Prezzo di listino € 6.490</p>
        <p>La Valico 525DSX è la crossover per chi viaggia anche fuori strada.</p>
      </div>
      <table>
        <tr><td>Prezzo di listino</td><td>€ 6.490</td></tr>
        <tr><td>Cilindrata</td><td>494 cc</td></tr>
      </table>
    </body></html>
    """

    def test_pages_from_api(self, offline_session):
        """Test that editorial pages and the homepage are dropped."""
        adapter = VogeAdapter(session=offline_session)

        refs = adapter.pages_from_api(self.API_BODY, adapter.api_page_url(1))

        assert [r.url for r in refs] == [
            "https://vogeitaly.it/valico-525dsx/",
            "https://vogeitaly.it/sfida-sr4-max/",
        ]

    def test_invalid_api_body_is_empty_page(self, offline_session):
        """Test that a non-JSON body ends pagination instead of raising."""
        adapter = VogeAdapter(session=offline_session)
        assert adapter.pages_from_api("<html>maintenance</html>", adapter.api_page_url(1)) == []

    def test_extract(self, offline_session):
        """Test fields and the hero + linked-JPEG gallery whitelist."""
        adapter = VogeAdapter(session=offline_session)

        item = extract(adapter, self.DETAIL_HTML, CandidateRef(url="https://vogeitaly.it/valico-525dsx/"))

        assert item is not None
        assert item.model == "Valico 525DSX"
        assert item.price == 6490
        assert item.displacement == 494
        assert item.category == "strada"
        assert item.short_description.startswith("La Valico 525DSX")
        assert item.images == [
            "https://vogeitaly.it/wp-content/uploads/valico-hero.jpg",
            "https://vogeitaly.it/wp-content/uploads/valico-1.jpg",
        ]

    def test_scooter_category(self, offline_session):
        """Test that SFIDA models are scooters."""
        assert VogeAdapter(session=offline_session).category_of("https://vogeitaly.it/sfida-sr4-max/") == "scooter"

    def test_price_and_displacement_from_page_text(self, offline_session):
        """Test the whole-page scan when no table or price heading is present."""
        html = """
        <html><head><title>Brivido 500R – Voge Italia</title></head><body>
          <h1>VOGE Brivido 500R</h1>
          <div class="banner">Tua da € 5.290 f.c.</div>
          <div class="specs">Motore bicilindrico 471 cm³ raffreddato a liquido</div>
        </body></html>
        """
        adapter = VogeAdapter(session=offline_session)

        fields = adapter.extract_fields(html, CandidateRef(url="https://vogeitaly.it/brivido-500r/"))

        assert fields.price == 5290
        assert fields.displacement == 471


class TestMotoIt:
    """Dealer used listings on moto.it."""

    DETAIL_HTML = """
    <div class="dlr-modal">
      <div class="dlr-modal__print__header">
        <h1 class="dlr-modal__print__header__title">Honda</h1>
        <h2 class="dlr-modal__print__header__subtitle">CB 500 X (2021)</h2>
      </div>
      <table class="dlr-modal__specs__table">
        <tr><th class="spec-label">Prezzo</th><td>€ <span itemprop="price">5.690</span></td></tr>
        <tr><th class="spec-label">Km</th><td>8.723</td></tr>
        <tr><th class="spec-label">Cilindrata</th><td>471 cc</td></tr>
      </table>
      <div class="dlr-modal__description__content">Unico proprietario, tagliandi certificati.</div>
      <img src="https://cdn-img.stcrm.it/images/HOR_STD/300x/thumb-1.jpg">
      <script>
        var annuncio_9548041 = [{"href": "https://cdn-img.stcrm.it/images/1000x750/a.jpg"},
                                {"href": "https://cdn-img.stcrm.it/images/1000x750/b.jpg"},
                                {"href": "https://elsewhere.example/c.jpg"}];
      </script>
    </div>
    """

    def test_listing_page_urls(self):
        """Test the pagination URL scheme."""
        assert listing_page_url(1) == "https://dealer.moto.it/avanzimoto/Usato"
        assert listing_page_url(3) == "https://dealer.moto.it/avanzimoto/Usato/pagina-3"

    def test_listing_ids(self, offline_session):
        """Test listing id extraction from data-target attributes."""
        adapter = MotoItAdapter(session=offline_session)
        html = """
        <div data-target="#annuncio_9548041"></div>
        <a data-target="#annuncio_9548041"></a>
        <div data-target="#annuncio_9550001"></div>
        <div data-target="#newsletter"></div>
        """

        refs = adapter.listing_ids(html, listing_page_url(1))

        assert [r.source_id for r in refs] == ["9548041", "9550001"]
        assert refs[0].url == "https://dealer.moto.it/avanzimoto/Detail/Detail?ID=9548041"

    def test_extract_used_listing(self, offline_session):
        """Test brand, year, kilometres and the JS gallery."""
        adapter = MotoItAdapter(session=offline_session)
        ref = CandidateRef(url="https://dealer.moto.it/avanzimoto/Detail/Detail?ID=9548041", source_id="9548041")

        item = extract(adapter, self.DETAIL_HTML, ref)

        assert item is not None
        assert item.brand_name == "Honda"
        assert item.model == "CB 500 X"
        assert item.year == 2021
        assert item.price == 5690
        assert item.kilometers == 8723
        assert item.displacement == 471
        assert item.condition == "usata"
        assert item.source_id == "9548041"
        assert item.images == [
            "https://cdn-img.stcrm.it/images/1000x750/a.jpg",
            "https://cdn-img.stcrm.it/images/1000x750/b.jpg",
        ]

    def test_thumbnail_fallback(self, offline_session):
        """Test high-res thumbnails when the JS gallery is missing."""
        adapter = MotoItAdapter(session=offline_session)
        html = self.DETAIL_HTML.split("<script>")[0]
        ref = CandidateRef(url="https://dealer.moto.it/avanzimoto/Detail/Detail?ID=9548041", source_id="9548041")

        assert adapter.extract_images(html, ref) == ["https://cdn-img.stcrm.it/images/1000x750/thumb-1.jpg"]

    def test_fields_from_description_without_specs_table(self, offline_session):
        """Test that price and displacement are found in the modal text."""
        adapter = MotoItAdapter(session=offline_session)
        html = """
        <div class="dlr-modal">
          <h1 class="dlr-modal__print__header__title">Yamaha</h1>
          <h2 class="dlr-modal__print__header__subtitle">Tracer 7 (2022)</h2>
          <div class="dlr-modal__description__content">Motore 689 cc, prezzo 7.900 € trattabili.</div>
        </div>
        """
        ref = CandidateRef(url="https://dealer.moto.it/avanzimoto/Detail/Detail?ID=9550001", source_id="9550001")

        fields = adapter.extract_fields(html, ref)

        assert fields.price == 7900
        assert fields.displacement == 689
        assert fields.year == 2022

    def test_detail_request_is_ajax(self, offline_session):
        """Test that the detail endpoint is called as an XHR."""
        adapter = MotoItAdapter(session=offline_session)
        seen = {}

        def fake_fetch(url, headers=None):
            seen["headers"] = headers
            return ""

        adapter.fetch = fake_fetch
        adapter.fetch_candidate(CandidateRef(url="https://dealer.moto.it/avanzimoto/Detail/Detail?ID=1"))

        assert seen["headers"] == {"X-Requested-With": "XMLHttpRequest"}
