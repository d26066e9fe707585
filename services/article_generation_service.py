from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from app.core.logging import get_logger
from app.models.content import (
    ArticleTone,
    ArticleType,
    Blog,
    GeneratedArticle,
    StoredProduct,
    category_for_article_type,
)
from services.affiliate_links import resolve_affiliate_placeholders
from services.openai_service import OracleError, TextOracle
from services.text_utils import (
    estimate_reading_time,
    extract_json_list,
    extract_json_object,
    slugify,
    timestamp_suffix,
)

logger = get_logger().bind(module="article_generation_service")

CONTENT_TEMPERATURE = 0.7
CONTENT_MAX_TOKENS = 4000
META_TEMPERATURE = 0.5
META_MAX_TOKENS = 500
META_CONTENT_PREFIX_CHARS = 1000
IDEAS_TEMPERATURE = 0.8

_STRUCTURES: Dict[ArticleType, str] = {
    ArticleType.REVIEW: """Écris un test/review détaillé et objectif sur: {subject}

Structure attendue:
1. Introduction accrocheuse
2. Présentation du produit
3. Caractéristiques principales
4. Points forts (avec liste)
5. Points faibles (avec liste)
6. Notre avis
7. Conclusion avec verdict

Le contenu doit être:
- Honnête et équilibré
- Basé sur une analyse approfondie
- Utile pour le lecteur qui hésite à acheter
- Optimisé SEO avec le mot-clé principal
""",
    ArticleType.GUIDE: """Écris un guide d'achat complet sur: {subject}

Structure attendue:
1. Introduction expliquant pourquoi ce guide est utile
2. Les critères essentiels à considérer avant l'achat
3. Les différents types/catégories de produits
4. Les erreurs à éviter
5. Notre sélection recommandée
6. FAQ (3-5 questions fréquentes)
7. Conclusion avec conseils finaux

Le contenu doit être:
- Éducatif et informatif
- Structuré avec des sous-titres clairs
- Pratique avec des conseils actionables
- Optimisé SEO
""",
    ArticleType.COMPARATIF: """Écris un comparatif détaillé: {subject}

Structure attendue:
1. Introduction présentant les produits comparés
2. Tableau récapitulatif des caractéristiques
3. Comparaison détaillée critère par critère
4. Pour quel profil d'utilisateur chaque produit ?
5. Notre verdict final
6. Conclusion

Le contenu doit être:
- Objectif et factuel
- Avec des comparaisons précises
- Utile pour aider à choisir
- Optimisé SEO
""",
    ArticleType.TOP: """Écris un article "TOP/Meilleurs" sur: {subject}

Structure attendue:
1. Introduction expliquant la méthodologie de sélection
2. Liste numérotée des produits (du meilleur au moins bien)
3. Pour chaque produit:
   - Titre avec position (#1, #2, etc.)
   - Description courte
   - Points forts
   - Points faibles
   - Pour qui ?
   - Prix indicatif
4. Conclusion avec récapitulatif

Le contenu doit être:
- Engageant et facile à parcourir
- Avec un classement justifié
- Utile pour décider rapidement
- Optimisé SEO
""",
}

_TONE_INSTRUCTIONS: Dict[ArticleTone, str] = {
    ArticleTone.PROFESSIONAL: "Adopte un ton professionnel et expert, avec un vocabulaire précis.",
    ArticleTone.CASUAL: "Adopte un ton décontracté et accessible, comme si tu parlais à un ami.",
    ArticleTone.ENTHUSIASTIC: "Adopte un ton enthousiaste et passionné, tout en restant crédible.",
}

_META_SYSTEM_PROMPT = """Tu génères des métadonnées SEO optimisées pour des articles d'affiliation.
Réponds uniquement en JSON valide avec ce format exact:
{
  "title": "Titre accrocheur de l'article (max 60 caractères)",
  "seoTitle": "Titre SEO optimisé avec mot-clé principal (max 60 caractères)",
  "seoDescription": "Meta description engageante avec call-to-action (max 155 caractères)",
  "excerpt": "Résumé de l'article en 2-3 phrases (max 200 caractères)",
  "tags": ["tag1", "tag2", "tag3"]
}"""


def render_product_block(products: Sequence[StoredProduct]) -> str:
    if not products:
        return ""
    lines = ["", "", "Produits à inclure dans l'article:"]
    for index, product in enumerate(products, start=1):
        line = f"\n{index}. {product.title}"
        if product.price:
            line += f" - {product.price}€"
        if product.rating:
            line += f" - Note: {product.rating}/5"
        lines.append(line)
        if product.features:
            lines.append(f"   Caractéristiques: {', '.join(product.features[:3])}")
        lines.append(f"   ASIN: {product.product_id}")
    return "\n".join(lines)


def build_system_prompt(blog: Blog, tone: ArticleTone, keywords: Sequence[str]) -> str:
    keyword_text = ", ".join(keywords) or "aucun spécifié"
    return f"""Tu es un rédacteur expert en contenu d'affiliation pour le blog "{blog.name}" dans la niche "{blog.niche}".

Règles importantes:
- Écris en français
- Utilise le format HTML pour le contenu (h2, h3, p, ul, li, strong, em)
- N'utilise JAMAIS de h1 (le titre sera ajouté séparément)
- Inclus des appels à l'action naturels vers Amazon
- Pour chaque produit mentionné, inclus un bouton d'achat avec l'ASIN
- {_TONE_INSTRUCTIONS[tone]}
- Mots-clés à intégrer naturellement: {keyword_text}

Format des liens affiliés à utiliser:
<a href="AFFILIATE_LINK_ASIN" class="affiliate-btn" target="_blank" rel="nofollow sponsored">Voir sur Amazon</a>

Remplace ASIN par l'ASIN du produit (exemple: AFFILIATE_LINK_B084TSLMC6)."""


def build_content_prompt(article_type: ArticleType, subject: str, products: Sequence[StoredProduct]) -> str:
    return _STRUCTURES[article_type].format(subject=subject) + render_product_block(products)


def default_metadata(article_type: ArticleType, subject: str) -> Dict[str, Any]:
    return {
        "title": subject,
        "seoTitle": subject,
        "seoDescription": f"Découvrez notre {article_type.value} sur {subject}",
        "excerpt": f"Notre {article_type.value} complet sur {subject}.",
        "tags": [],
    }


def merge_metadata(raw: Optional[Dict[str, Any]], defaults: Dict[str, Any]) -> Dict[str, Any]:
    """Per-field fallback: a missing or blank field keeps its default."""
    meta = dict(defaults)
    if not raw:
        return meta
    for key in ("title", "seoTitle", "seoDescription", "excerpt"):
        value = raw.get(key)
        if isinstance(value, str) and value.strip():
            meta[key] = value.strip()
    tags = raw.get("tags")
    if isinstance(tags, list):
        meta["tags"] = [str(t).strip() for t in tags if str(t).strip()]
    return meta


class ArticleGenerationService:
    """
    Two oracle calls per article: long-form HTML content, then a small JSON
    metadata document. Metadata problems never fail the article.
    """

    def __init__(self, oracle: TextOracle) -> None:
        self._oracle = oracle

    async def generate_article(
        self,
        blog: Blog,
        article_type: ArticleType,
        *,
        subject: Optional[str] = None,
        products: Sequence[StoredProduct] = (),
        keywords: Sequence[str] = (),
        tone: ArticleTone = ArticleTone.PROFESSIONAL,
    ) -> GeneratedArticle:
        article_type = ArticleType(article_type)
        tone = ArticleTone(tone)
        subject = (subject or "").strip()
        if not subject:
            if not products:
                raise ValueError("subject or at least one product is required")
            subject = products[0].title

        content = await self._oracle.generate_text(
            build_system_prompt(blog, tone, keywords),
            build_content_prompt(article_type, subject, products),
            temperature=CONTENT_TEMPERATURE,
            max_tokens=CONTENT_MAX_TOKENS,
        )
        if not content.strip():
            raise OracleError("empty article content")

        meta = await self._generate_metadata(blog, article_type, subject, content)
        slug = slugify(meta["title"]) or slugify(subject) or article_type.value

        return GeneratedArticle(
            title=meta["title"],
            slug=slug,
            excerpt=meta["excerpt"],
            content=resolve_affiliate_placeholders(content, blog.amazon_affiliate_id),
            seo_title=meta["seoTitle"],
            seo_description=meta["seoDescription"],
            category=category_for_article_type(article_type),
            tags=meta["tags"],
            reading_time=estimate_reading_time(content),
        )

    async def _generate_metadata(
        self,
        blog: Blog,
        article_type: ArticleType,
        subject: str,
        content: str,
    ) -> Dict[str, Any]:
        defaults = default_metadata(article_type, subject)
        user_prompt = (
            f'Génère les métadonnées pour cet article de type "{article_type.value}" '
            f'sur le sujet: "{subject}"\n\n'
            f"Blog: {blog.name}\n"
            f"Niche: {blog.niche}\n\n"
            "Contenu de l'article (début):\n"
            f"{content[:META_CONTENT_PREFIX_CHARS]}..."
        )
        try:
            raw_text = await self._oracle.generate_text(
                _META_SYSTEM_PROMPT,
                user_prompt,
                temperature=META_TEMPERATURE,
                max_tokens=META_MAX_TOKENS,
            )
        except OracleError as exc:
            logger.warning("article_meta_call_failed", blog_id=blog.id, subject=subject, error=str(exc))
            return defaults

        raw = extract_json_object(raw_text)
        if raw is None:
            logger.warning("article_meta_unparseable", blog_id=blog.id, subject=subject)
        return merge_metadata(raw, defaults)

    async def suggest_article_ideas(self, blog: Blog, count: int = 5) -> List[str]:
        system_prompt = (
            "Tu es un expert en stratégie de contenu pour les blogs d'affiliation.\n"
            "Génère des idées d'articles qui ont un fort potentiel SEO et de conversion.\n"
            "Réponds uniquement avec une liste JSON de titres d'articles."
        )
        user_prompt = (
            f'Génère {count} idées d\'articles pour le blog "{blog.name}" dans la niche "{blog.niche}".\n\n'
            "Types d'articles possibles:\n"
            "- Reviews de produits spécifiques\n"
            "- Guides d'achat thématiques\n"
            "- Comparatifs entre produits populaires\n"
            "- TOP/Classements des meilleurs produits\n\n"
            'Format de réponse attendu:\n["Idée 1", "Idée 2", ...]'
        )
        raw_text = await self._oracle.generate_text(
            system_prompt,
            user_prompt,
            temperature=IDEAS_TEMPERATURE,
            max_tokens=META_MAX_TOKENS,
        )
        ideas = extract_json_list(raw_text) or []
        return [str(idea).strip() for idea in ideas if str(idea).strip()][:count]


async def resolve_unique_slug(store: Any, blog_id: str, slug: str) -> str:
    """Re-check against stored articles; on collision append a timestamp suffix."""
    if not await store.article_slug_exists(blog_id, slug):
        return slug
    return f"{slug}-{timestamp_suffix()}"
