"""Template rendering tests"""
import pytest
from types import SimpleNamespace

from newsdesk.services.template_renderer import (
    RenderConfig, render_template, render_button, wrap_in_layout, BUTTON_LABEL
)

CONFIG = RenderConfig(base_url="https://app.example.test", frontend_url="https://www.example.test")


def campaign(post_id=None, post_type=None):
    return SimpleNamespace(post_id=post_id, post_type=post_type)


def subscriber(name="Ani", email="delivered+ani@resend.dev", token="tok123"):
    return SimpleNamespace(name=name, email=email, token=token)


def post(title="Judul", sub_title=None, excerpt="Ringkasan", slug="judul"):
    return SimpleNamespace(title=title, sub_title=sub_title, excerpt=excerpt, slug=slug)


@pytest.mark.critical
class TestMergeTags:
    """Test merge tag substitution"""

    def test_name_and_email(self):
        html = render_template("Hi {{name}} <{{email}}>", campaign(), subscriber(), CONFIG)
        assert html == "Hi Ani <delivered+ani@resend.dev>"

    def test_missing_name_falls_back_to_subscriber(self):
        html = render_template("Hi {{name}}", campaign(), subscriber(name=None), CONFIG)
        assert html == "Hi Subscriber"

    def test_unsubscribe_and_preference_urls(self):
        html = render_template("{{unsubscribe_url}}|{{preference_url}}", campaign(), subscriber(), CONFIG)
        unsubscribe, preference = html.split("|")
        assert unsubscribe == "https://app.example.test/newsletter/unsubscribe?email=delivered%2Bani%40resend.dev"
        assert preference == "https://app.example.test/newsletter/preferences?token=tok123"

    def test_post_fields_and_url(self):
        html = render_template(
            "{{title}}/{{sub_title}}/{{excerpt}}/{{post_url}}",
            campaign(post_id=7, post_type="blog"),
            subscriber(),
            CONFIG,
            post=post(sub_title="Sub")
        )
        assert html == "Judul/Sub/Ringkasan/https://www.example.test/blog/judul"

    def test_post_url_uses_base_url_without_frontend_url(self):
        config = RenderConfig(base_url="https://app.example.test", frontend_url="")
        html = render_template("{{post_url}}", campaign(post_id=7, post_type="news"), subscriber(), config, post=post())
        assert html == "https://app.example.test/news/judul"

    def test_no_post_renders_empty_values(self):
        html = render_template(
            "[{{title}}][{{sub_title}}][{{excerpt}}][{{post_url}}][{{button}}][{{body}}]",
            campaign(), subscriber(), CONFIG
        )
        assert html == "[][][][][][]"

    def test_post_without_campaign_reference_has_no_url(self):
        html = render_template("[{{post_url}}]", campaign(), subscriber(), CONFIG, post=post())
        assert html == "[]"

    def test_button_links_to_post(self):
        html = render_template("{{button}}", campaign(post_id=1, post_type="blog"), subscriber(), CONFIG, post=post())
        assert BUTTON_LABEL in html
        assert 'href="https://www.example.test/blog/judul"' in html
        assert "Jika tombol tidak berfungsi" in html

    def test_tags_are_case_sensitive_and_unknown_tags_kept(self):
        html = render_template("{{Name}} {{unknown}}", campaign(), subscriber(), CONFIG)
        assert html == "{{Name}} {{unknown}}"

    def test_substituted_values_are_not_rescanned(self):
        html = render_template(
            "{{title}} / {{name}}",
            campaign(post_id=1, post_type="blog"),
            subscriber(name="{{email}}"),
            CONFIG,
            post=post(title="Promo {{name}}")
        )
        assert html == "Promo {{name}} / {{email}}"

    def test_none_template_raises(self):
        with pytest.raises(ValueError):
            render_template(None, campaign(), subscriber(), CONFIG)


@pytest.mark.medium
class TestLayout:
    """Test the email layout wrapper"""

    def test_render_button_empty_without_url(self):
        assert render_button("") == ""

    def test_layout_contains_body_and_footer_links(self):
        html = wrap_in_layout("<p>Isi</p>", "https://u.test/unsub", "https://u.test/prefs", brand_name="Brand")
        assert "<p>Isi</p>" in html
        assert 'href="https://u.test/unsub"' in html
        assert 'href="https://u.test/prefs"' in html
        assert "Manage Preferences" in html
        assert "&copy; Brand" in html
