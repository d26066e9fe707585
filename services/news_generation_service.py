from __future__ import annotations

from typing import Any, Dict, List, Union

from app.core.logging import get_logger
from app.models.content import (
    GeneratedNewsSummary,
    NewsSkip,
    ScrapedNewsItem,
    coerce_news_category,
)
from services.openai_service import TextOracle
from services.text_utils import base36_suffix, extract_json_object, slugify

logger = get_logger().bind(module="news_generation_service")

SUMMARY_TEMPERATURE = 0.7
SUMMARY_MAX_TOKENS = 500
MAX_TAGS = 5
DEFAULT_IMAGE_KEYWORD = "gadget"

_SYSTEM_PROMPT = (
    "Tu es un assistant qui génère des résumés d'actualités au format JSON. "
    "Tu réponds uniquement en JSON valide."
)


class GenerationError(RuntimeError):
    """Oracle output could not be turned into a summary (distinct from a skip)."""


# Orients each summary toward purchase decisions for the blog's audience.
NICHE_CONTEXT: Dict[str, Dict[str, Any]] = {
    "tech": {
        "description": "blog de tests et comparatifs de gadgets high-tech",
        "products": ["smartphones", "tablettes", "accessoires tech", "objets connectés", "écouteurs", "montres connectées"],
        "angle": "guide d'achat et conseils pour choisir les meilleurs produits tech",
    },
    "audio": {
        "description": "blog spécialisé dans le matériel audio et hi-fi",
        "products": ["casques audio", "enceintes", "écouteurs", "amplis", "DAC", "platines"],
        "angle": "tests et comparatifs pour les audiophiles et mélomanes",
    },
    "gaming": {
        "description": "blog gaming et matériel de jeu",
        "products": ["consoles", "PC gaming", "manettes", "casques gaming", "claviers", "souris"],
        "angle": "actualités gaming et guides d'achat pour les gamers",
    },
    "maison": {
        "description": "blog domotique et équipement maison",
        "products": ["robots aspirateurs", "purificateurs", "électroménager connecté", "domotique"],
        "angle": "tests de produits pour la maison intelligente",
    },
    "sport": {
        "description": "blog équipement sportif et fitness",
        "products": ["montres GPS", "vélos électriques", "équipement fitness", "accessoires running"],
        "angle": "comparatifs et tests pour les sportifs",
    },
    "photo": {
        "description": "blog photo et vidéo",
        "products": ["appareils photo", "objectifs", "drones", "stabilisateurs", "accessoires"],
        "angle": "tests et guides pour les photographes",
    },
    "cuisine": {
        "description": "blog électroménager cuisine",
        "products": ["robots cuisine", "multicuiseurs", "blenders", "machines à café"],
        "angle": "tests et comparatifs d'équipement culinaire",
    },
    "beaute": {
        "description": "blog beauté et soins",
        "products": ["appareils beauté", "sèche-cheveux", "épilateurs", "brosses"],
        "angle": "tests de gadgets beauté et conseils",
    },
}


def niche_context(niche: str) -> Dict[str, Any]:
    context = NICHE_CONTEXT.get((niche or "").strip().lower())
    if context is not None:
        return context
    return {
        "description": f"blog spécialisé {niche}",
        "products": [niche],
        "angle": f"actualités et guides {niche}",
    }


def build_summary_prompt(item: ScrapedNewsItem, niche: str) -> str:
    context = niche_context(niche)
    products = ", ".join(context["products"])
    return f"""Tu es le rédacteur en chef d'un {context["description"]}.

Ton blog propose des tests, comparatifs et guides d'achat pour ces types de produits : {products}.

OBJECTIF : Transformer cette actualité en contenu pertinent pour tes lecteurs qui cherchent des conseils d'achat.

Actualité source :
- Titre : "{item.title}"
- Source : {item.source}
- Extrait : "{item.snippet}"

INSTRUCTIONS :
1. Reformule COMPLÈTEMENT avec tes propres mots (jamais de copie)
2. Oriente le résumé vers l'INTÉRÊT PRATIQUE pour un acheteur potentiel
3. Si l'actu parle d'un nouveau produit, mentionne pourquoi c'est intéressant à suivre
4. Si c'est une tendance marché, explique l'impact sur les choix d'achat

Génère un JSON avec cette structure :
{{
  "title": "Titre accrocheur orienté produit/achat (max 80 caractères)",
  "summary": "Résumé de 200-300 caractères expliquant pourquoi cette actu intéresse un acheteur",
  "category": "tech|tendances|economie (choisir la plus pertinente)",
  "tags": ["3-5 tags produits pertinents"],
  "imageKeyword": "mot-clé ANGLAIS précis pour Unsplash (ex: smartphone, headphones, laptop, smartwatch)"
}}

Si l'actualité n'est PAS pertinente pour un blog {context["angle"]}, réponds : {{"skip": true}}

Réponds UNIQUEMENT avec le JSON."""


def _clean_tags(raw: object) -> List[str]:
    if not isinstance(raw, list):
        return []
    tags = [str(t).strip() for t in raw if str(t).strip()]
    return tags[:MAX_TAGS]


def _clean_str(raw: object) -> str:
    return raw.strip() if isinstance(raw, str) else ""


class NewsGenerationService:
    def __init__(self, oracle: TextOracle) -> None:
        self._oracle = oracle

    async def generate_summary(
        self,
        item: ScrapedNewsItem,
        niche: str,
    ) -> Union[GeneratedNewsSummary, NewsSkip]:
        raw_text = await self._oracle.generate_text(
            _SYSTEM_PROMPT,
            build_summary_prompt(item, niche),
            temperature=SUMMARY_TEMPERATURE,
            max_tokens=SUMMARY_MAX_TOKENS,
        )
        if not raw_text or not raw_text.strip():
            raise GenerationError("empty oracle output")

        data = extract_json_object(raw_text)
        if data is None:
            logger.warning("news_summary_unparseable", url=item.url, chars=len(raw_text))
            raise GenerationError("oracle output is not a JSON object")

        if data.get("skip"):
            logger.info("news_generation_skipped", url=item.url, title=item.title[:80])
            return NewsSkip(title=item.title, url=item.url)

        title = _clean_str(data.get("title")) or item.title
        summary = _clean_str(data.get("summary")) or item.snippet
        slug_base = slugify(title) or "news"

        return GeneratedNewsSummary(
            title=title,
            slug=f"{slug_base}-{base36_suffix()}",
            summary=summary,
            category=coerce_news_category(data.get("category")),
            tags=_clean_tags(data.get("tags")),
            image_keyword=_clean_str(data.get("imageKeyword")) or DEFAULT_IMAGE_KEYWORD,
        )
