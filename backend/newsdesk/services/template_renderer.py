"""Merge-tag rendering for newsletter emails

Templates use {{tag}} placeholders. Every tag in the original text is
replaced in a single pass, so a value that itself contains a tag (for
example a post title with "{{name}}" in it) is never expanded again.
Unknown tags are left untouched.
"""
import re
from dataclasses import dataclass
from html import escape
from typing import Dict, Optional
from urllib.parse import quote

from newsdesk.core.config import settings

MERGE_TAG_PATTERN = re.compile(r"\{\{(\w+)\}\}")

DEFAULT_SUBSCRIBER_NAME = "Subscriber"
BUTTON_LABEL = "Baca Selengkapnya"
BUTTON_FALLBACK_TEXT = "Jika tombol tidak berfungsi, klik link berikut:"


@dataclass(frozen=True)
class RenderConfig:
    """URLs used to build links inside rendered emails"""
    base_url: str
    frontend_url: str = ""

    @classmethod
    def from_settings(cls) -> "RenderConfig":
        return cls(base_url=settings.APP_URL, frontend_url=settings.FRONTEND_URL)

    @property
    def post_base_url(self) -> str:
        return (self.frontend_url or self.base_url).rstrip("/")


def unsubscribe_url(config: RenderConfig, email: str) -> str:
    return f"{config.base_url.rstrip('/')}/newsletter/unsubscribe?email={quote(email or '', safe='')}"


def preference_url(config: RenderConfig, token: Optional[str]) -> str:
    return f"{config.base_url.rstrip('/')}/newsletter/preferences?token={quote(token or '', safe='')}"


def post_url(config: RenderConfig, campaign, post) -> str:
    """Public URL of the campaign's post, or "" when the campaign has no post"""
    if post is None or not campaign.post_id or not campaign.post_type:
        return ""
    return f"{config.post_base_url}/{campaign.post_type}/{post.slug}"


def render_button(url: str) -> str:
    """Call-to-action block linking to the post, with a plain fallback link"""
    if not url:
        return ""
    safe_url = escape(url, quote=True)
    return (
        '<table role="presentation" cellspacing="0" cellpadding="0" style="margin: 24px 0;">'
        '<tr><td>'
        f'<a href="{safe_url}" class="button" style="display: inline-block; padding: 12px 24px; '
        'background-color: #1d4ed8; color: #ffffff; text-decoration: none; border-radius: 6px;">'
        f'{BUTTON_LABEL}</a>'
        '</td></tr></table>'
        f'<p style="font-size: 12px; color: #6b7280;">{BUTTON_FALLBACK_TEXT}<br>'
        f'<a href="{safe_url}">{safe_url}</a></p>'
    )


def build_merge_values(campaign, subscriber, config: RenderConfig, post=None) -> Dict[str, str]:
    """Tag name -> replacement value for one recipient"""
    link = post_url(config, campaign, post)
    return {
        "name": subscriber.name or DEFAULT_SUBSCRIBER_NAME,
        "email": subscriber.email or "",
        "unsubscribe_url": unsubscribe_url(config, subscriber.email),
        "preference_url": preference_url(config, subscriber.token),
        "title": (post.title or "") if post is not None else "",
        "sub_title": (post.sub_title or "") if post is not None else "",
        "excerpt": (post.excerpt or "") if post is not None else "",
        "post_url": link,
        "button": render_button(link),
        "body": "",
    }


def render_template(template_body: Optional[str], campaign, subscriber, config: RenderConfig, post=None) -> str:
    """Render a template body for a single subscriber

    Args:
        template_body: Template HTML with {{tag}} placeholders
        campaign: Campaign being sent (post_id/post_type decide post links)
        subscriber: Recipient
        config: URL configuration
        post: Post the campaign announces, if any

    Returns:
        Rendered HTML

    Raises:
        ValueError: If template_body is None
    """
    if template_body is None:
        raise ValueError("Template content is missing")

    values = build_merge_values(campaign, subscriber, config, post)

    def substitute(match: re.Match) -> str:
        return values.get(match.group(1), match.group(0))

    return MERGE_TAG_PATTERN.sub(substitute, template_body)


def wrap_in_layout(body: str, unsubscribe_link: str, preference_link: str, brand_name: Optional[str] = None) -> str:
    """Wrap rendered campaign HTML in the email layout with a preferences/unsubscribe footer"""
    brand = escape(brand_name or settings.BRAND_NAME)
    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{brand}</title>
</head>
<body style="margin: 0; padding: 0; background-color: #f3f4f6; font-family: Arial, Helvetica, sans-serif;">
    <table role="presentation" width="100%" cellspacing="0" cellpadding="0">
        <tr>
            <td align="center" style="padding: 24px;">
                <table role="presentation" width="600" cellspacing="0" cellpadding="0" style="background-color: #ffffff; border-radius: 8px;">
                    <tr>
                        <td style="padding: 32px; color: #111827; line-height: 1.6;">
                            {body}
                        </td>
                    </tr>
                    <tr>
                        <td style="padding: 16px 32px; border-top: 1px solid #e5e7eb; font-size: 12px; color: #6b7280;">
                            <p>&copy; {brand}</p>
                            <p>
                                <a href="{escape(preference_link, quote=True)}" style="color: #6b7280;">Manage Preferences</a>
                                &middot;
                                <a href="{escape(unsubscribe_link, quote=True)}" style="color: #6b7280;">Unsubscribe</a>
                            </p>
                        </td>
                    </tr>
                </table>
            </td>
        </tr>
    </table>
</body>
</html>"""
