from __future__ import annotations
"""
Blendoracle — Block Catalog
============================
Every renderable block type as data: its wire class, section style, the
slices of retrieval context its prompt needs and the structural template the
content model must follow. Adding a block type means adding a BlockType
entry here; nothing in the pipeline branches on individual type names except
the two synthesized blocks.
"""

from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Context kinds a block prompt can request
# ---------------------------------------------------------------------------
CTX_PRODUCTS = "products"              # all relevant products
CTX_RELATED_PRODUCTS = "related_products"  # top 3 products, secondary context
CTX_MAIN_PRODUCT = "main_product"      # the single representative product
CTX_HERO_IMAGE = "hero_image"          # primary image of the first product
CTX_RECIPES = "recipes"
CTX_USE_CASES = "use_cases"
CTX_FAQS = "faqs"                      # FAQ records scored against the query
CTX_TESTIMONIALS = "testimonials"      # curated review mix
CTX_QUERY = "query"                    # the user's own words
CTX_PRICE_TIERS = "price_tiers"        # content summary price tiers

SECTION_DARK = "dark"
SECTION_HIGHLIGHT = "highlight"
SECTION_DEFAULT = "default"


@dataclass(frozen=True)
class BlockType:
    name: str
    purpose: str
    context: tuple = ()
    template: str = ""
    section_style: str = SECTION_DEFAULT
    synthesized: bool = False   # built locally from the reasoning result
    selectable: bool = True     # the reasoning model may pick it
    wire_class: str = ""

    @property
    def css_class(self) -> str:
        return self.wire_class or self.name


@dataclass
class BlockCatalog:
    types: dict[str, BlockType] = field(default_factory=dict)
    aliases: dict[str, str] = field(default_factory=dict)

    def register(self, block: BlockType):
        self.types[block.name] = block

    def get(self, name: str) -> BlockType | None:
        return self.types.get(name)

    def canonical(self, name: str) -> str:
        """Map a model-produced type name onto its canonical spelling."""
        cleaned = (name or "").strip().lower()
        return self.aliases.get(cleaned, cleaned)

    def is_known(self, name: str) -> bool:
        return name in self.types

    def section_style(self, name: str) -> str:
        block = self.types.get(name)
        return block.section_style if block else SECTION_DEFAULT

    def selectable(self) -> list[BlockType]:
        return [b for b in self.types.values() if b.selectable]


# ===========================================================================
# Templates
# ===========================================================================

_HERO = """
## HTML Template (two-column layout: image | content):
The hero block expects a row with TWO cells - image cell and content cell.
Do NOT use section, hero-block, hero-content classes - just simple divs.

<div>
  <div>
    <picture>
      <img src="HERO_IMAGE_URL" alt="Hero image">
    </picture>
  </div>
  <div>
    <p>OPTIONAL EYEBROW TEXT</p>
    <h1>Main Headline Here</h1>
    <p>Supporting description text that explains the value proposition.</p>
    <p><a href="#explore" class="button">Explore Now</a></p>
  </div>
</div>"""

_PRODUCT_HERO = """
## HTML Template (product image | name, tagline, key specs, price):
<div>
  <div><picture><img src="EXACT_PRODUCT_IMAGE_URL" alt="Product Name"></picture></div>
  <div>
    <h1>Exact Product Name</h1>
    <p>One-sentence tagline from context.</p>
    <ul>
      <li>Key spec or feature</li>
      <li>Key spec or feature</li>
      <li>Key spec or feature</li>
    </ul>
    <p><strong>$XXX.XX</strong></p>
    <p><a href="EXACT_PRODUCT_URL" class="button primary" target="_blank">Shop Now</a></p>
  </div>
</div>"""

_RECIPE_HERO = """
## HTML Template (recipe image | name, time, difficulty, summary):
<div>
  <div><picture><img src="EXACT_RECIPE_IMAGE_URL" alt="Recipe name"></picture></div>
  <div>
    <h1>Exact Recipe Name From Context</h1>
    <p>Time • Difficulty</p>
    <p>Why this recipe suits the user's request.</p>
    <p><a href="EXACT_RECIPE_URL" class="button" target="_blank">Get the Recipe</a></p>
  </div>
</div>"""

_USE_CASE_CARDS = """
## HTML Template (REQUIRED: header + 3-4 cards):
YOU MUST OUTPUT THIS HEADER FIRST - IT IS REQUIRED:
<header class="ucheader">
  <h2 class="uctitle">[WRITE A TITLE TAILORED TO THE USER'S QUESTION]</h2>
  <p class="ucsubtitle">[Brief subtitle about what these use cases help accomplish]</p>
</header>

THEN output 3-4 use case cards:
<div class="use-case-card">
  <div class="use-case-icon">🥤</div>
  <div class="use-case-content">
    <h4 class="use-case-title">Use Case Name</h4>
    <p class="use-case-description">Brief description of this use case.</p>
  </div>
</div>"""

_RECIPE_CARDS = """
## HTML Template (generate cards ONLY for recipes provided in context):
Use ONLY the recipes provided in the context below. Do NOT invent recipe names.
If a recipe has 'no-image', skip the image div entirely.
Start with an empathetic title; add a subtitle if the recipes are not an exact match.

<div class="recipe-cards">
  <header class="rcheader">
    <h3 class="rctitle">Recipes You Might Love</h3>
    <p class="rcsubtitle">Brief context about why these recipes are shown, if needed.</p>
  </header>
  <a href="EXACT_RECIPE_URL_FROM_CONTEXT" class="recipe-card" target="_blank">
    <div class="recipe-card-image">
      <img src="EXACT_IMAGE_URL_FROM_CONTEXT" alt="Recipe name" loading="lazy">
    </div>
    <div class="recipe-card-content">
      <h4 class="recipe-card-title">Exact Recipe Name From Context</h4>
      <p class="recipe-card-description">Time and difficulty from context.</p>
    </div>
  </a>
</div>"""

_PRODUCT_CARDS = """
## HTML Template (REQUIRED: header + 3-4 product cards):
<header class="pcheader">
  <h2 class="pctitle">[TITLE TAILORED TO THE USER'S QUESTION]</h2>
  <p class="pcsubtitle">[Why these products match their needs]</p>
</header>

Rules:
- Use EXACT image URLs and product URLs from the context
- Do NOT include star ratings
- Do NOT invent product names

<div class="product-card">
  <a href="EXACT_PRODUCT_URL_FROM_CONTEXT" class="product-card-image" target="_blank">
    <img src="EXACT_IMAGE_URL_FROM_CONTEXT" alt="Product Name" loading="lazy">
  </a>
  <div class="product-card-body">
    <h3 class="product-name"><a href="EXACT_PRODUCT_URL_FROM_CONTEXT" target="_blank">Exact Product Name</a></h3>
    <p class="product-tagline">Brief tagline from context</p>
    <div class="product-price"><span class="current-price">$XXX.XX</span></div>
    <a href="EXACT_PRODUCT_URL_FROM_CONTEXT" class="product-cta button" target="_blank">View Details</a>
  </div>
</div>"""

_COMPARISON_TABLE = """
## HTML Template (rows of a comparison table):
First row is the header with product names LINKED to their product pages;
remaining rows compare one spec each.

<div>
  <div></div>
  <div><strong><a href="EXACT_PRODUCT_A_URL" target="_blank">Product A Name</a></strong></div>
  <div><strong><a href="EXACT_PRODUCT_B_URL" target="_blank">Product B Name</a></strong></div>
</div>
<div>
  <div><strong>Price</strong></div>
  <div>$XXX</div>
  <div>$YYY</div>
</div>"""

_SPECS_TABLE = """
## HTML Template (vertical label/value pairs, 5-8 key specifications):
<div>
  <div>Motor</div>
  <div>2.2 HP Peak</div>
</div>
<div>
  <div>Container Size</div>
  <div>64 oz</div>
</div>"""

_PRODUCT_RECOMMENDATION = """
## HTML Template - ONE primary product recommendation.
Pick the BEST single product for the user's needs. Do NOT list multiple products.

<div class="product-recommendation">
  <div class="product-recommendation-image">
    <picture><img src="EXACT_PRODUCT_IMAGE_URL" alt="Product Name"></picture>
  </div>
  <div class="product-recommendation-content">
    <p class="product-recommendation-eyebrow">BEST FOR [USE CASE]</p>
    <h2 class="product-recommendation-headline">Product Name</h2>
    <p class="product-recommendation-body">Why this product is the best choice, citing matching features.</p>
    <div class="product-recommendation-price">
      <span class="price">$XXX.XX</span>
      <span class="price-note">10-Year Warranty</span>
    </div>
    <div class="product-recommendation-ctas">
      <a href="EXACT_PRODUCT_URL" class="button primary" target="_blank">Shop Now</a>
    </div>
  </div>
</div>"""

_FEATURE_HIGHLIGHTS = """
## HTML Template (REQUIRED: header + 3-4 feature rows):
<header class="fhheader">
  <h2 class="fhtitle">[TITLE TAILORED TO THE USER'S QUESTION]</h2>
  <p class="fhsubtitle">[What these features help accomplish]</p>
</header>
<div>
  <div>
    <h3>Feature Name</h3>
    <p>Description of this feature and its benefits.</p>
  </div>
</div>"""

_TESTIMONIALS = """
## HTML Template (use ONLY the real testimonials provided):
Use the EXACT quotes from the testimonial data. Do NOT invent testimonials.
If a testimonial has a source URL, include it as a "Read the full story" link.

<div>
  <div><h2>What Professionals & Customers Say</h2></div>
</div>
<div>
  <div><img src="/icons/user-avatar.svg" alt="Author Name"></div>
  <div>
    <p>★★★★★</p>
    <p>"EXACT_QUOTE_FROM_CONTEXT"</p>
    <p><strong>Author Name</strong>, Author Title</p>
    <p><a href="SOURCE_URL_IF_AVAILABLE" target="_blank">Read the full story</a></p>
  </div>
</div>"""

_FAQ = """
## HTML Template (accordion Q&A pairs, 4-6 FAQs):
Prefer the FAQ records provided; rephrase answers to fit the user's question.
<div>
  <div>Question text goes here?</div>
  <div>Answer text providing helpful information.</div>
</div>"""

_CTA = """
## HTML Template (simple call-to-action):
CTA text must be value-driven and specific to the user's goal. Never use
generic text such as "Learn More" or "Click Here".
<div>
  <div>
    <h2>Headline Text</h2>
    <p>Supporting description text.</p>
    <p><a href="#" class="button primary">Primary CTA</a></p>
    <p><a href="#" class="button secondary">Secondary CTA</a></p>
  </div>
</div>"""

_QUICK_ANSWER = """
## HTML Template (2-3 rows):
Row 1: short, direct answer (one sentence, start with Yes/No when applicable).
Row 2: brief explanation.
Row 3 (optional): expanded details for "Tell me more".
<div><div>Yes, it handles that easily.</div></div>
<div><div>Brief explanation in one or two sentences.</div></div>
<div><div>Optional expanded details.</div></div>"""

_SUPPORT_TRIAGE = """
## HTML Template (empathetic support triage):
Acknowledge the frustration first. No product recommendations or sales language.
Row 1: empathetic headline. Row 2: what we understand about the problem.
Then one row per resolution path (title | short steps).
<div><div>We're sorry you're dealing with this.</div></div>
<div><div>Short restatement of the issue.</div></div>
<div>
  <div>Check your warranty</div>
  <div>Steps to start a warranty claim.</div>
</div>"""

_BUDGET_BREAKDOWN = """
## HTML Template:
Row 1: title. Then one row per price tier (tier name | products from context with prices).
Be honest about what each tier gives up.
<div><div>Your Options by Budget</div></div>
<div>
  <div>Under $500</div>
  <div>Product Name - $XXX: what you get</div>
</div>"""

_ACCESSIBILITY_SPECS = """
## HTML Template (physical and ergonomic specifications):
Focus on weight, container handle, controls, lid effort, height. One row per spec.
<div>
  <div>Container weight</div>
  <div>Value and what it means for grip strength</div>
</div>"""

_EMPATHY_HERO = """
## HTML Template (warm, acknowledging hero, no sales language):
<div>
  <div>
    <h1>Acknowledging headline about their situation</h1>
    <p>One or two sentences of understanding and reassurance.</p>
  </div>
</div>"""

_BEST_PICK = """
## HTML Template (single best pick with a short verdict):
<div>
  <div><picture><img src="EXACT_PRODUCT_IMAGE_URL" alt="Product Name"></picture></div>
  <div>
    <p>OUR PICK</p>
    <h2>Exact Product Name</h2>
    <p>One-paragraph verdict tied to the user's needs.</p>
  </div>
</div>"""

_INFO_ROWS = """
## HTML Template:
Row 1: title. Then 3-5 rows of (label | honest, specific explanation).
<div><div>Section Title</div></div>
<div>
  <div>Label</div>
  <div>Explanation</div>
</div>"""

_SPLIT_CONTENT = """
## HTML Template (image | text):
<div>
  <div><picture><img src="IMAGE_URL_FROM_CONTEXT" alt=""></picture></div>
  <div>
    <h2>Headline</h2>
    <p>Two short paragraphs.</p>
  </div>
</div>"""

_COLUMNS = """
## HTML Template (one row, 2-3 columns):
<div>
  <div><h3>Column title</h3><p>Column text.</p></div>
  <div><h3>Column title</h3><p>Column text.</p></div>
</div>"""

_TEXT = """
## HTML Template:
<div>
  <div>
    <h2>Heading</h2>
    <p>One to three short paragraphs.</p>
  </div>
</div>"""


# ===========================================================================
# Catalog
# ===========================================================================

CATALOG = BlockCatalog(
    aliases={
        "cta-block": "cta",
        "hero-block": "hero",
        "faq-block": "faq",
    },
)

for _block in (
    BlockType("hero", "Full-width banner with headline and image - for landing/discovery",
              (CTX_HERO_IMAGE,), _HERO, SECTION_DARK),
    BlockType("product-hero", "Product-focused hero with image and specs - for product detail",
              (CTX_MAIN_PRODUCT,), _PRODUCT_HERO, SECTION_DARK),
    BlockType("recipe-hero", "Recipe hero with image and metadata - for recipe focus",
              (CTX_RECIPES,), _RECIPE_HERO),
    BlockType("product-cards", "Grid of 3-4 product cards - for browsing products",
              (CTX_PRODUCTS,), _PRODUCT_CARDS),
    BlockType("recipe-cards", "Grid of 3-4 recipe cards - for inspiration",
              (CTX_RECIPES,), _RECIPE_CARDS),
    BlockType("comparison-table", "Side-by-side product comparison - for comparing models",
              (CTX_PRODUCTS,), _COMPARISON_TABLE),
    BlockType("specs-table", "Technical specifications table - for detail-oriented users",
              (CTX_MAIN_PRODUCT,), _SPECS_TABLE),
    BlockType("product-recommendation", "Featured product with full details - for final recommendation",
              (CTX_PRODUCTS,), _PRODUCT_RECOMMENDATION),
    BlockType("feature-highlights", "Key features showcase - for use-case exploration",
              (CTX_QUERY, CTX_USE_CASES, CTX_RELATED_PRODUCTS), _FEATURE_HIGHLIGHTS),
    BlockType("use-case-cards", "Use case selection grid - for discovery",
              (CTX_USE_CASES, CTX_RELATED_PRODUCTS), _USE_CASE_CARDS),
    BlockType("testimonials", "Customer reviews - for social proof",
              (CTX_TESTIMONIALS,), _TESTIMONIALS, SECTION_HIGHLIGHT),
    BlockType("faq", "Common questions - for support",
              (CTX_QUERY, CTX_FAQS, CTX_RELATED_PRODUCTS), _FAQ),
    BlockType("cta", "Call-to-action button - for conversion",
              (CTX_QUERY, CTX_RELATED_PRODUCTS), _CTA, SECTION_DARK),
    BlockType("quick-answer", "Simple direct answer - for yes/no questions or quick confirmations",
              (CTX_QUERY, CTX_RELATED_PRODUCTS), _QUICK_ANSWER),
    BlockType("support-triage", "Help frustrated customers - for product issues/warranty",
              (CTX_QUERY, CTX_FAQS), _SUPPORT_TRIAGE),
    BlockType("budget-breakdown", "Price/value transparency - for budget-conscious users",
              (CTX_PRICE_TIERS, CTX_PRODUCTS), _BUDGET_BREAKDOWN),
    BlockType("accessibility-specs", "Physical/ergonomic specs - for mobility/accessibility concerns",
              (CTX_QUERY, CTX_MAIN_PRODUCT), _ACCESSIBILITY_SPECS),
    BlockType("empathy-hero", "Warm, acknowledging hero - for medical/emotional situations",
              (CTX_QUERY,), _EMPATHY_HERO),
    BlockType("best-pick", "Single best pick with a verdict - for users who want one answer",
              (CTX_PRODUCTS,), _BEST_PICK),
    BlockType("sustainability-info", "Environmental responsibility - for eco-conscious buyers",
              (CTX_QUERY, CTX_RELATED_PRODUCTS), _INFO_ROWS),
    BlockType("smart-features", "Connected/app capabilities - for tech-forward users",
              (CTX_QUERY, CTX_PRODUCTS), _INFO_ROWS),
    BlockType("engineering-specs", "Deep technical data - for engineers/spec-focused buyers",
              (CTX_PRODUCTS,), _INFO_ROWS),
    BlockType("noise-context", "Real-world noise comparisons - for noise-sensitive users",
              (CTX_QUERY, CTX_RELATED_PRODUCTS), _INFO_ROWS),
    BlockType("allergen-safety", "Cross-contamination protocols - for allergy-concerned users",
              (CTX_QUERY, CTX_RELATED_PRODUCTS), _INFO_ROWS),
    BlockType("split-content", "Image and text side by side - for storytelling",
              (CTX_QUERY, CTX_HERO_IMAGE), _SPLIT_CONTENT),
    BlockType("columns", "Two or three short columns - for parallel ideas",
              (CTX_QUERY,), _COLUMNS),
    BlockType("text", "Plain prose section - for short explanations",
              (CTX_QUERY,), _TEXT),
    BlockType("follow-up", "Suggestion chips for next actions (always included at end)",
              synthesized=True),
    BlockType("reasoning-user", "User-facing explanation of the page plan",
              section_style=SECTION_HIGHLIGHT, synthesized=True, selectable=False),
):
    CATALOG.register(_block)

# Never selectable and never rendered from a selection
RESERVED_TYPES = ("reasoning", "reasoning-user")


def block_table() -> str:
    """Markdown table of selectable blocks for the reasoning prompt."""
    rows = ["| Block | Purpose |", "|-------|---------|"]
    for block in CATALOG.selectable():
        rows.append(f"| {block.name} | {block.purpose} |")
    return "\n".join(rows)
