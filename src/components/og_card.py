"""Default social preview card."""

from src.core.components import TemplateComponent

OG_CARD_TEMPLATE = """
<div class="card">
  <h1 class="title">{{ text }}</h1>
  <p class="footer">{{ footer }}</p>
</div>
"""

OG_CARD_CSS = """
.card {
  display: flex;
  flex-direction: column;
  background: #0f172a;
  color: #f8fafc;
  padding: 64px;
}
.title { font-size: 72px; color: #f8fafc; }
.footer { font-size: 32px; color: #94a3b8; }
"""

OgCard = TemplateComponent(
    OG_CARD_TEMPLATE,
    OG_CARD_CSS,
    defaults={"text": "Hello, world!", "footer": "og-image"},
    name="og_card",
)
