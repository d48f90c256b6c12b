"""
Ordered tech-stack detector registry.

Each detector is a named predicate over a PageView (raw markup, parsed DOM
and script-injected globals) tagged with {name, category, icon}. The order
of TECH_DETECTORS is meaningful:

    1. CMS / site builders   (page-builder platforms set a platform marker)
    2. JS frameworks          (some are suppressed on page-builder platforms)
    3. CSS / UI libraries
    4. Build tools
    5. Third-party services   (analytics, marketing, email, chat, hosting,
                               payments, testing, conversion, forms, reviews,
                               scheduling, accessibility, privacy, video,
                               maps, fonts)

Platform suppression:
    Wix, Framer, Squarespace and Shopify ship React internally, so React is
    not reported on their pages. Detectors list the platforms they are
    suppressed on.
"""

import re
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, List, Optional

from bs4 import BeautifulSoup

from .models import TechStackEntry

logger = logging.getLogger(__name__)

# Dotted global paths the predicates read; a rendering browser captures these
CAPTURED_GLOBALS = (
    "Shopify", "Shopify.theme.name", "wixBiSession",
    "React", "__REACT_DEVTOOLS_GLOBAL_HOOK__", "__NEXT_DATA__",
    "Vue", "__VUE__", "__NUXT__", "angular", "ng", "Ember",
    "jQuery", "jQuery.fn.jquery", "Intercom", "drift",
)


# =============================================================================
# PAGE VIEW
# =============================================================================

class PageView:
    """
    Read-only view of one page used by detector predicates.

    Attributes:
        html: Full document markup (case preserved; matching is case-sensitive)
        soup: Parsed DOM for selector queries
        globals: Script-injected globals captured in the page context,
                 keyed by dotted path (e.g. "Shopify.theme.name")
    """

    def __init__(self, html: str, soup: BeautifulSoup, globals_: Optional[Dict[str, Any]] = None):
        self.html = html or ""
        self.soup = soup
        self.globals = globals_ or {}

    def has(self, *needles: str) -> bool:
        return any(n in self.html for n in needles)

    def has_all(self, *needles: str) -> bool:
        return all(n in self.html for n in needles)

    def select(self, selector: str) -> bool:
        return self.soup.select_one(selector) is not None

    def has_global(self, *names: str) -> bool:
        return any(self.globals.get(n) for n in names)

    def global_value(self, name: str) -> Any:
        return self.globals.get(name)

    def generator(self, product: str) -> bool:
        return self.select(f'meta[name="generator"][content*="{product}"]')

    def body_class_prefix(self, prefix: str) -> bool:
        body = self.soup.body
        if body is None:
            return False
        return any(c.startswith(prefix) for c in body.get("class") or [])

    def body_attr(self, name: str) -> Optional[str]:
        body = self.soup.body
        if body is None:
            return None
        value = body.get(name)
        return value if isinstance(value, str) and value else None


# =============================================================================
# DETECTOR
# =============================================================================

@dataclass(frozen=True)
class Detector:
    name: str
    category: str
    icon: str
    match: Callable[[PageView], bool]
    platform: Optional[str] = None                      # marker set on match
    suppressed_on: FrozenSet[str] = frozenset()         # platforms that hide this
    label: Optional[Callable[[PageView], str]] = None   # dynamic display name
    extras: Optional[Callable[[PageView], List[TechStackEntry]]] = None

    def entry(self, view: PageView) -> TechStackEntry:
        name = self.label(view) if self.label else self.name
        return TechStackEntry(name=name, category=self.category, icon=self.icon)


def _any(*needles: str) -> Callable[[PageView], bool]:
    return lambda v: v.has(*needles)


# Platforms known to bundle React internally
PLATFORMS_USING_REACT = frozenset({"wix", "framer", "squarespace", "shopify"})


# =============================================================================
# CMS EXTRAS
# =============================================================================

WP_THEME_PATTERN = re.compile(r"wp-content/themes/([^/'\"]+)")
IGNORED_WP_THEMES = frozenset({"flavor"})

WORDPRESS_PLUGINS = {
    "elementor": "Elementor",
    "wpbakery": "WPBakery",
    "divi": "Divi",
    "beaver-builder": "Beaver Builder",
    "oxygen": "Oxygen Builder",
    "bricks": "Bricks Builder",
    "yoast": "Yoast SEO",
    "rank-math": "Rank Math",
    "all-in-one-seo": "All in One SEO",
    "seopress": "SEOPress",
    "woocommerce": "WooCommerce",
    "easy-digital-downloads": "Easy Digital Downloads",
    "contact-form-7": "Contact Form 7",
    "gravity-forms": "Gravity Forms",
    "wpforms": "WPForms",
    "formidable": "Formidable Forms",
    "ninja-forms": "Ninja Forms",
    "jetpack": "Jetpack",
    "wordfence": "Wordfence",
    "sucuri": "Sucuri Security",
    "ithemes-security": "iThemes Security",
    "w3-total-cache": "W3 Total Cache",
    "wp-rocket": "WP Rocket",
    "wp-super-cache": "WP Super Cache",
    "autoptimize": "Autoptimize",
    "litespeed": "LiteSpeed Cache",
    "smush": "Smush",
    "imagify": "Imagify",
    "shortpixel": "ShortPixel",
    "ewww": "EWWW Image Optimizer",
    "acf": "ACF",
    "advanced-custom-fields": "ACF",
    "breeze": "Breeze Cache",
    "updraftplus": "UpdraftPlus",
    "all-in-one-wp-migration": "All-in-One WP Migration",
    "mailchimp-for-wp": "MC4WP",
    "popup-maker": "Popup Maker",
    "optinmonster": "OptinMonster",
    "revslider": "Slider Revolution",
    "tablepress": "TablePress",
    "monsterinsights": "MonsterInsights",
    "google-site-kit": "Site Kit",
}


def _wordpress_extras(view: PageView) -> List[TechStackEntry]:
    entries = []
    theme = WP_THEME_PATTERN.search(view.html)
    if theme and theme.group(1) not in IGNORED_WP_THEMES:
        entries.append(TechStackEntry(theme.group(1), "theme", "🎨"))
    for slug, name in WORDPRESS_PLUGINS.items():
        if f"wp-content/plugins/{slug}" in view.html:
            entries.append(TechStackEntry(name, "plugin", "🔌"))
    return entries


def _shopify_extras(view: PageView) -> List[TechStackEntry]:
    entries = []
    theme = view.global_value("Shopify.theme.name")
    if theme:
        entries.append(TechStackEntry(f"Theme: {theme}", "theme", "🎨"))
    if view.has("recharge"):
        entries.append(TechStackEntry("Recharge (Subscriptions)", "plugin", "🔁"))
    if view.has("klaviyo"):
        entries.append(TechStackEntry("Klaviyo", "plugin", "📧"))
    if view.has("sms-bump", "smsbump"):
        entries.append(TechStackEntry("SMSBump", "plugin", "📱"))
    return entries


def _squarespace_extras(view: PageView) -> List[TechStackEntry]:
    template = view.body_attr("data-template-name")
    if template:
        return [TechStackEntry(f"Template: {template}", "theme", "🎨")]
    return []


def _wix_extras(view: PageView) -> List[TechStackEntry]:
    if view.has("wixstores", "wix-ecommerce"):
        return [TechStackEntry("Wix Stores", "plugin", "🛒")]
    return []


def _jquery_label(view: PageView) -> str:
    version = view.global_value("jQuery.fn.jquery")
    return f"jQuery {version}" if version else "jQuery"


TAILWIND_CLASS_PATTERN = re.compile(r'class="[^"]*\s(sm:|md:|lg:|xl:)')


def _is_tailwind(view: PageView) -> bool:
    hits = [
        view.has("tailwindcss"),
        view.has("tailwind."),
        view.has("text-gray-", "text-slate-", "text-zinc-"),
        view.has("bg-gray-", "bg-slate-", "bg-zinc-"),
        bool(TAILWIND_CLASS_PATTERN.search(view.html)),
        view.has_all("hover:", "focus:"),
        view.has_all("px-", "py-", "rounded-"),
    ]
    return sum(hits) >= 2


# =============================================================================
# REGISTRY
# =============================================================================

CMS_DETECTORS = [
    Detector(
        "WordPress", "cms", "📝",
        lambda v: v.generator("WordPress")
        or v.has("/wp-content/", "/wp-includes/", "/wp-json/")
        or v.body_class_prefix("wp-"),
        extras=_wordpress_extras,
    ),
    Detector(
        "Shopify", "cms", "🛒",
        lambda v: v.has_global("Shopify")
        or v.has("cdn.shopify.com", "shopify.com/s/", "myshopify.com", "Shopify.theme")
        or v.select('link[href*="shopify"]'),
        platform="shopify",
        extras=_shopify_extras,
    ),
    Detector(
        "Squarespace", "cms", "⬛",
        lambda v: v.has("squarespace.com", "static1.squarespace.com", "sqsp.net", "squarespace-cdn.com")
        or v.generator("Squarespace")
        or v.body_class_prefix("sqs-"),
        platform="squarespace",
        extras=_squarespace_extras,
    ),
    Detector(
        "Wix", "cms", "🟡",
        lambda v: v.has("wix.com", "static.wixstatic.com", "parastorage.com", "wixpress.com")
        or v.has_global("wixBiSession")
        or v.generator("Wix"),
        platform="wix",
        extras=_wix_extras,
    ),
    Detector(
        "Webflow", "cms", "🔷",
        lambda v: v.has("webflow.com", "assets.website-files.com", "uploads-ssl.webflow.com")
        or v.select("[data-wf-site]")
        or v.select("[data-wf-page]"),
        platform="webflow",
    ),
    Detector(
        "Framer", "cms", "🖼️",
        _any("framer.com", "framerusercontent.com", "framer-motion"),
        platform="framer",
    ),
    Detector("Ghost", "cms", "👻", lambda v: v.has("ghost.io", "ghost.org") or v.generator("Ghost")),
    Detector("HubSpot CMS", "cms", "🟠", lambda v: v.has_all("hubspot.net", "hs-sites")),
    Detector("Contentful", "cms", "📝", _any("contentful.com", "ctfassets.net")),
    Detector("Sanity", "cms", "📝", _any("sanity.io")),
    Detector("Strapi", "cms", "📝", _any("strapi.io")),
    Detector("Prismic", "cms", "📝", _any("prismic.io", "prismic-io")),
    Detector("Storyblok", "cms", "📝", _any("storyblok.com")),
    Detector(
        "Drupal", "cms", "💧",
        lambda v: v.has("Drupal", "/sites/default/files", "drupal.js") or v.generator("Drupal"),
    ),
    Detector("Joomla", "cms", "🟠", _any("Joomla", "/media/jui/", "/media/system/js/")),
    Detector("Craft CMS", "cms", "🔴", lambda v: v.has("craftcms") or v.generator("Craft")),
    Detector("BigCommerce", "cms", "🛍️", _any("bigcommerce.com", "bigcommerce-stencil")),
    Detector(
        "Magento", "cms", "🧡",
        lambda v: v.has_all("mage/", "Magento_")
        or v.has("Mage.Cookies", "/skin/frontend/")
        or v.select('script[src*="mage/"]'),
    ),
    Detector("PrestaShop", "cms", "🛒", _any("prestashop", "/themes/classic/")),
]

FRAMEWORK_DETECTORS = [
    Detector(
        "React", "framework", "⚛️",
        lambda v: v.has_global("React", "__REACT_DEVTOOLS_GLOBAL_HOOK__")
        or v.has("react-dom", "react.production", "react.development", "_reactRoot",
                 "__reactFiber", "data-reactroot")
        or v.select("[data-react-helmet]"),
        suppressed_on=PLATFORMS_USING_REACT,
    ),
    Detector(
        "Next.js", "framework", "▲",
        lambda v: v.has_global("__NEXT_DATA__") or v.has("/_next/", "__NEXT_DATA__"),
    ),
    Detector(
        "Gatsby", "framework", "🟣",
        lambda v: v.select("#___gatsby") or v.has("gatsby-", "/page-data/"),
    ),
    Detector(
        "Vue.js", "framework", "💚",
        lambda v: v.has_global("Vue", "__VUE__")
        or v.has("vue.js", "vue.min.js", "vue@", "v-cloak"),
    ),
    Detector("Nuxt", "framework", "💚", lambda v: v.has_global("__NUXT__") or v.has("/_nuxt/")),
    Detector(
        "Angular", "framework", "🔺",
        lambda v: v.has_global("angular", "ng") or v.has("ng-version", "ng-app"),
    ),
    Detector(
        "Svelte", "framework", "🧡",
        lambda v: v.has("__svelte", "svelte-") or v.select('[class*="svelte-"]'),
    ),
    Detector("SvelteKit", "framework", "🧡", _any("__sveltekit", "_app/immutable/")),
    Detector(
        "Astro", "framework", "🚀",
        lambda v: v.select("[data-astro-cid]") or v.select("[data-astro-source-file]") or v.has("astro:"),
    ),
    Detector("Remix", "framework", "💿", _any("__remixContext", "__remixManifest")),
    Detector("Solid.js", "framework", "💠", _any("solid-js", "_$HY")),
    Detector("Qwik", "framework", "⚡", _any("qwikloader", "q:container")),
    Detector("Ember.js", "framework", "🐹", lambda v: v.has_global("Ember") or v.has("ember-view", "ember.js")),
    Detector("Alpine.js", "framework", "🏔️", _any("x-data", "alpinejs")),
    Detector("HTMX", "framework", "📦", _any("htmx", "hx-get", "hx-post")),
    Detector(
        "jQuery", "library", "📘",
        lambda v: v.has_global("jQuery") or v.has("jquery.min.js", "jquery-"),
        label=_jquery_label,
    ),
]

LIBRARY_DETECTORS = [
    Detector(
        "Bootstrap", "library", "🅱️",
        lambda v: v.has("bootstrap.min", "bootstrap.bundle") or v.has_all("btn-primary", "container"),
    ),
    Detector("Tailwind CSS", "library", "🌊", _is_tailwind),
    Detector("Radix UI", "library", "🎨", _any("data-radix", "radix-")),
    Detector("Chakra UI", "library", "⚡", _any("chakra-", "chakra-ui")),
    Detector(
        "Material UI", "library", "📐",
        lambda v: v.has("MuiButton") or v.has_all("css-", "MuiBox"),
    ),
    Detector("Ant Design", "library", "🐜", _any("antd", "ant-btn", "ant-layout")),
    Detector("Bulma", "library", "🟢", _any("bulma")),
    Detector("Materialize", "library", "📐", _any("materialize", "material-icons")),
    Detector("Foundation", "library", "🏗️", _any("foundation.js", "foundation.min")),
]

BUILD_DETECTORS = [
    Detector(
        "Vite", "build", "⚡",
        lambda v: v.has("@vite", "vite/")
        or v.select('script[type="module"][src*="/@"]')
        or v.select('script[src*=".tsx"]')
        or v.select('script[src*=".jsx"]'),
    ),
    Detector("Webpack", "build", "📦", _any("webpackJsonp", "__webpack")),
    Detector("Parcel", "build", "📦", _any("parcelRequire")),
    Detector("Rollup", "build", "📦", _any("rollup")),
    Detector("Turbopack", "build", "⚡", _any("turbopack")),
]

ANALYTICS_DETECTORS = [
    Detector("Google Analytics", "analytics", "📊", _any("google-analytics.com", "gtag", "googletagmanager")),
    Detector("Google Tag Manager", "analytics", "🏷️", _any("googletagmanager.com/gtm")),
    Detector("Meta Pixel", "analytics", "📘", _any("facebook.com/tr", "fbevents.js", "connect.facebook.net")),
    Detector("Hotjar", "analytics", "🔥", _any("hotjar.com", "hjid")),
    Detector("Microsoft Clarity", "analytics", "🔍", _any("clarity.ms")),
    Detector("Segment", "analytics", "📈", _any("segment.com", "cdn.segment.com")),
    Detector("Mixpanel", "analytics", "📉", _any("mixpanel.com")),
    Detector("Amplitude", "analytics", "📊", _any("amplitude.com")),
    Detector("Heap", "analytics", "📊", _any("heap.io", "heapanalytics")),
    Detector("Plausible", "analytics", "📊", _any("plausible.io")),
    Detector("Fathom", "analytics", "📊", _any("usefathom.com", "cdn.usefathom")),
    Detector("PostHog", "analytics", "🦔", _any("posthog")),
    Detector("Snapchat Pixel", "analytics", "👻", _any("snapchat.com/tr", "sc-static.net")),
    Detector("LinkedIn Insight", "analytics", "💼", _any("ads.linkedin.com", "linkedin.com/px")),
    Detector("TikTok Pixel", "analytics", "🎵", _any("tiktok.com/i18n", "analytics.tiktok.com")),
    Detector("Pinterest Tag", "analytics", "📌", _any("pinterest.com/ct", "pintrk")),
]

MARKETING_DETECTORS = [
    Detector("HubSpot", "marketing", "🟠", _any("hubspot", "hs-scripts.com", "hbspt")),
    Detector("Marketo", "marketing", "🟣", _any("marketo", "munchkin")),
    Detector("Salesforce", "marketing", "☁️", _any("salesforce", "pardot")),
    Detector("ActiveCampaign", "marketing", "📧", _any("activecampaign")),
    Detector("Mailchimp", "email", "🐵", _any("mailchimp", "list-manage.com")),
    Detector("Klaviyo", "email", "📧", _any("klaviyo")),
    Detector("ConvertKit", "email", "📧", _any("convertkit")),
    Detector("Drip", "email", "💧", _any("drip.com")),
    Detector("SendGrid", "email", "📧", _any("sendgrid")),
    Detector("Constant Contact", "email", "📧", _any("constantcontact")),
]

CHAT_DETECTORS = [
    Detector("Intercom", "chat", "💬", lambda v: v.has("intercom.io", "intercom-") or v.has_global("Intercom")),
    Detector("Drift", "chat", "💬", lambda v: v.has("drift.com", "driftt.com") or v.has_global("drift")),
    Detector("Zendesk", "chat", "💬", _any("zendesk", "zdassets.com")),
    Detector("Tawk.to", "chat", "💬", _any("tawk.to")),
    Detector("Crisp", "chat", "💬", _any("crisp.chat", "crisp.im")),
    Detector("LiveChat", "chat", "💬", _any("livechat", "livechatinc.com")),
    Detector("Freshchat", "chat", "💬", _any("freshdesk", "freshchat")),
    Detector("Olark", "chat", "💬", _any("olark")),
    Detector("Help Scout", "chat", "💬", _any("helpscout", "beacon-v2")),
    Detector("Gorgias", "chat", "💬", _any("gorgias")),
]

HOSTING_DETECTORS = [
    Detector("Cloudflare", "cdn", "🟠", _any("cloudflare", "cf-ray")),
    Detector("CloudFront", "cdn", "☁️", _any("cloudfront.net")),
    Detector("Akamai", "cdn", "🌐", _any("akamai", "akamaized.net")),
    Detector("Fastly", "cdn", "⚡", _any("fastly")),
    Detector("Vercel", "hosting", "▲", _any("vercel")),
    Detector("Netlify", "hosting", "🌐", _any("netlify")),
    Detector("Render", "hosting", "🟢", _any("render.com")),
    Detector("Heroku", "hosting", "🟣", _any("heroku")),
    Detector("AWS", "hosting", "☁️", _any("aws.amazon", ".amazonaws.com")),
    # googleapis.com alone is also used by fonts
    Detector("Google Cloud", "hosting", "☁️",
             _any("storage.googleapis.com", "appspot.com", "run.app", "cloudfunctions.net")),
]

PAYMENT_DETECTORS = [
    Detector("Stripe", "payments", "💳", _any("stripe.com")),
    Detector("PayPal", "payments", "💳", _any("paypal.com", "paypalobjects.com")),
    Detector("Square", "payments", "💳", _any("square.com", "squareup.com")),
    Detector("Braintree", "payments", "💳", _any("braintree")),
    Detector("Afterpay", "payments", "💳", _any("afterpay")),
    Detector("Klarna", "payments", "💳", _any("klarna")),
    Detector("Affirm", "payments", "💳", _any("affirm.com")),
    Detector("Sezzle", "payments", "💳", _any("sezzle")),
]

TESTING_DETECTORS = [
    Detector("Optimizely", "testing", "🔬", _any("optimizely")),
    Detector("VWO", "testing", "🔬", _any("vwo.com", "visualwebsiteoptimizer")),
    Detector("Google Optimize", "testing", "🔬", _any("google.com/optimize", "googleoptimize")),
    Detector("AB Tasty", "testing", "🔬", _any("abtasty")),
    Detector("LaunchDarkly", "testing", "🚀", _any("launchdarkly")),
]

CONVERSION_DETECTORS = [
    Detector("OptinMonster", "conversion", "👹", _any("optinmonster")),
    Detector("Sumo", "conversion", "🤼", _any("sumo.com", "sumojs")),
    Detector("Privy", "conversion", "🎯", _any("privy.com", "privy-js")),
    Detector("Justuno", "conversion", "🎯", _any("justuno")),
    Detector("Wheelio", "conversion", "🎡", _any("wheelofpopups", "wheelio")),
    Detector("Unbounce", "conversion", "📄", _any("unbounce")),
    Detector("Leadpages", "conversion", "📄", _any("leadpages", "lpages.co")),
    Detector("Instapage", "conversion", "📄", _any("instapage")),
    Detector("ClickFunnels", "conversion", "🔻", _any("clickfunnels")),
]

FORM_DETECTORS = [
    Detector("Typeform", "forms", "📝", _any("typeform.com")),
    Detector("JotForm", "forms", "📝", _any("jotform.com", "jotform.us")),
    Detector("Cognito Forms", "forms", "📝", lambda v: v.has_all("cognito", "forms")),
    Detector("Formstack", "forms", "📝", _any("formstack")),
    Detector("Paperform", "forms", "📝", _any("paperform")),
    Detector("Tally", "forms", "📝", _any("tally.so")),
]

REVIEW_DETECTORS = [
    Detector("Trustpilot", "reviews", "⭐", _any("trustpilot")),
    Detector("Yotpo", "reviews", "⭐", _any("yotpo")),
    Detector("Judge.me", "reviews", "⭐", _any("judge.me")),
    Detector("Stamped.io", "reviews", "⭐", _any("stamped.io")),
    Detector("Loox", "reviews", "⭐", _any("loox.io")),
    Detector("Okendo", "reviews", "⭐", _any("okendo.io")),
    Detector("Fomo", "reviews", "📢", _any("fomo.com", "fomo.js")),
    Detector("Bazaarvoice", "reviews", "⭐", _any("bazaarvoice")),
    Detector("PowerReviews", "reviews", "⭐", _any("powerreviews")),
]

SCHEDULING_DETECTORS = [
    Detector("Calendly", "scheduling", "📅", _any("calendly.com")),
    Detector("Acuity Scheduling", "scheduling", "📅", _any("acuityscheduling.com")),
    Detector("Cal.com", "scheduling", "📅", _any("cal.com")),
    Detector("Chili Piper", "scheduling", "🌶️", _any("chilipiper")),
    Detector("HubSpot Meetings", "scheduling", "📅", lambda v: v.has_all("hubspot", "meetings")),
]

ACCESSIBILITY_DETECTORS = [
    Detector("accessiBe", "accessibility", "♿", _any("accessibe", "accessibilitywidget")),
    Detector("UserWay", "accessibility", "♿", _any("userway")),
    Detector("AudioEye", "accessibility", "♿", _any("audioeye")),
]

PRIVACY_DETECTORS = [
    Detector("Cookiebot", "privacy", "🍪", _any("cookiebot", "Cookiebot")),
    Detector("OneTrust", "privacy", "🍪", _any("onetrust", "OneTrust")),
    Detector("Cookie Consent", "privacy", "🍪", _any("cookieconsent")),
    Detector("TrustArc", "privacy", "🍪", _any("trustarc", "truste")),
    Detector("Iubenda", "privacy", "🍪", _any("iubenda")),
]

VIDEO_DETECTORS = [
    Detector("YouTube Embeds", "video", "▶️", _any("youtube.com/embed", "youtube-nocookie.com")),
    Detector("Vimeo", "video", "▶️", _any("vimeo.com")),
    Detector("Wistia", "video", "▶️", _any("wistia.com", "wistia.net")),
    Detector("Vidyard", "video", "▶️", _any("vidyard")),
    Detector("Loom", "video", "▶️", _any("loom.com/embed")),
]

MAP_DETECTORS = [
    Detector("Google Maps", "maps", "🗺️", _any("maps.google.com", "maps.googleapis.com")),
    Detector("Mapbox", "maps", "🗺️", _any("mapbox")),
]

FONT_DETECTORS = [
    Detector("Google Fonts", "fonts", "🔤", _any("fonts.googleapis.com", "fonts.gstatic.com")),
    Detector("Adobe Fonts", "fonts", "🔤", _any("typekit")),
    Detector("Font Awesome", "fonts", "🎨", _any("fontawesome")),
]

TECH_DETECTORS: List[Detector] = (
    CMS_DETECTORS
    + FRAMEWORK_DETECTORS
    + LIBRARY_DETECTORS
    + BUILD_DETECTORS
    + ANALYTICS_DETECTORS
    + MARKETING_DETECTORS
    + CHAT_DETECTORS
    + HOSTING_DETECTORS
    + PAYMENT_DETECTORS
    + TESTING_DETECTORS
    + CONVERSION_DETECTORS
    + FORM_DETECTORS
    + REVIEW_DETECTORS
    + SCHEDULING_DETECTORS
    + ACCESSIBILITY_DETECTORS
    + PRIVACY_DETECTORS
    + VIDEO_DETECTORS
    + MAP_DETECTORS
    + FONT_DETECTORS
)


def run_detectors(view: PageView, detectors: Optional[List[Detector]] = None) -> List[TechStackEntry]:
    """
    Run detectors in order and return raw (not yet deduplicated) entries.

    A detector that raises is skipped; detection never aborts on one rule.
    """
    detectors = TECH_DETECTORS if detectors is None else detectors
    entries: List[TechStackEntry] = []
    platforms = set()

    for detector in detectors:
        if detector.suppressed_on & platforms:
            logger.debug(f"Skipping {detector.name}: bundled by {sorted(detector.suppressed_on & platforms)}")
            continue
        try:
            if not detector.match(view):
                continue
            entries.append(detector.entry(view))
            if detector.extras:
                entries.extend(detector.extras(view))
        except Exception as e:
            logger.debug(f"Detector {detector.name} failed: {e}")
            continue
        if detector.platform:
            platforms.add(detector.platform)

    return entries


def dedupe_by_name(entries: List[TechStackEntry]) -> List[TechStackEntry]:
    """Drop later entries whose name was already seen; order preserved."""
    seen = set()
    unique = []
    for entry in entries:
        if entry.name in seen:
            continue
        seen.add(entry.name)
        unique.append(entry)
    return unique
