"""Deterministic artifacts used when model output is unusable."""
from __future__ import annotations

import html
import re
from typing import List, Optional

from codestorm.models import DesignComponent, DesignProposal
from codestorm.utils.ids import generate_unique_id
from codestorm.utils.palettes import ColorPalette, generate_css_variables

TITLE_LIMIT = 50

_STOP_WORDS = {
    "el", "la", "los", "las", "de", "del", "que", "y", "a", "en", "un", "una",
    "es", "se", "no", "te", "lo", "le", "da", "su", "por", "son", "con", "para",
    "crea", "crear", "generar", "hacer", "página", "pagina", "web", "sitio",
    "the", "and", "for", "with", "create", "build", "make", "website", "site",
}

DEFAULT_TYPOGRAPHY = {
    "heading_font": "Inter, sans-serif",
    "body_font": "Inter, sans-serif",
    "base_size": "16px",
    "scale": 1.25,
}

DEFAULT_COLORS = {
    "primary": "#3b82f6",
    "secondary": "#10b981",
    "accent": "#8b5cf6",
    "background": "#ffffff",
    "text": "#1f2937",
}


def truncate_title(instruction: str, limit: int = TITLE_LIMIT) -> str:
    text = " ".join((instruction or "").split())
    if not text:
        return "Proyecto web"
    return f"{text[:limit]}..." if len(text) > limit else text


def extract_keywords(instruction: str, limit: int = 5) -> List[str]:
    """Content words of the instruction, in order, without stop words."""
    words = re.findall(r"\w+", (instruction or "").lower())
    keywords: List[str] = []
    for word in words:
        if len(word) > 3 and word not in _STOP_WORDS and word not in keywords:
            keywords.append(word)
        if len(keywords) == limit:
            break
    return keywords


def fallback_components() -> List[DesignComponent]:
    return [
        DesignComponent(
            id=generate_unique_id("component"),
            name="Encabezado",
            type="header",
            description="Encabezado principal con navegación",
        ),
        DesignComponent(
            id=generate_unique_id("component"),
            name="Sección Principal",
            type="hero",
            description="Sección hero con título y descripción",
        ),
        DesignComponent(
            id=generate_unique_id("component"),
            name="Contenido",
            type="content",
            description="Sección de contenido principal",
        ),
        DesignComponent(
            id=generate_unique_id("component"),
            name="Pie de Página",
            type="footer",
            description="Pie de página con información de contacto",
        ),
    ]


def fallback_html(title: str, instruction: str, keywords: Optional[List[str]] = None) -> str:
    safe_title = html.escape(title)
    safe_instruction = html.escape(instruction or "")
    keyword_text = html.escape(", ".join(keywords or [])) or "ninguna"
    return f"""<!DOCTYPE html>
<html lang="es">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{safe_title}</title>
    <link rel="stylesheet" href="styles.css">
</head>
<body>
    <header class="header">
        <div class="container">
            <h1 class="header-title">{safe_title}</h1>
            <nav class="nav">
                <ul class="nav-list">
                    <li><a href="#inicio" class="nav-link">Inicio</a></li>
                    <li><a href="#informacion" class="nav-link">Información</a></li>
                    <li><a href="#contacto" class="nav-link">Contacto</a></li>
                </ul>
            </nav>
        </div>
    </header>

    <main class="main">
        <section id="inicio" class="hero">
            <div class="container">
                <h2 class="hero-title">{safe_title}</h2>
                <p class="hero-description">Basado en su solicitud: {safe_instruction}</p>
                <button class="btn btn-primary">Más información</button>
            </div>
        </section>

        <section id="informacion" class="info">
            <div class="container">
                <h2 class="section-title">Información del proyecto</h2>
                <p>Palabras clave identificadas: {keyword_text}</p>
            </div>
        </section>
    </main>

    <footer id="contacto" class="footer">
        <div class="container">
            <p>Proyecto generado por Codestorm</p>
        </div>
    </footer>
</body>
</html>"""


def site_css(title: str, palette: Optional[ColorPalette] = None) -> str:
    """Base stylesheet; colors come from the palette's CSS variables."""
    if palette is not None:
        variables = generate_css_variables(palette)
    else:
        variables = "\n".join(
            [":root {"]
            + [f"  --color-{name}: {value};" for name, value in DEFAULT_COLORS.items()]
            + ["  --color-text-primary: var(--color-text);", "  --color-surface: #ffffff;", "}"]
        )
    return f"""/* Estilos para {title} */
{variables}

* {{
  margin: 0;
  padding: 0;
  box-sizing: border-box;
}}

body {{
  font-family: {DEFAULT_TYPOGRAPHY["body_font"]};
  font-size: {DEFAULT_TYPOGRAPHY["base_size"]};
  line-height: 1.6;
  color: var(--color-text-primary);
  background-color: var(--color-background);
}}

.container {{
  max-width: 1200px;
  margin: 0 auto;
  padding: 0 1.5rem;
}}

.header {{
  background-color: var(--color-primary);
  color: var(--color-surface);
  padding: 1rem 0;
}}

.nav-list {{
  display: flex;
  gap: 1.5rem;
  list-style: none;
}}

.nav-link {{
  color: inherit;
  text-decoration: none;
}}

.nav-link:hover {{
  color: var(--color-accent);
}}

.hero {{
  padding: 4rem 0;
  text-align: center;
  background: linear-gradient(135deg, var(--color-primary), var(--color-secondary));
  color: var(--color-surface);
}}

.btn-primary {{
  margin-top: 1.5rem;
  padding: 0.75rem 1.5rem;
  border: none;
  border-radius: 0.5rem;
  background-color: var(--color-accent);
  color: var(--color-surface);
  cursor: pointer;
}}

.info {{
  padding: 3rem 0;
}}

.footer {{
  padding: 2rem 0;
  text-align: center;
  background-color: var(--color-secondary);
  color: var(--color-surface);
}}

@media (max-width: 768px) {{
  .nav-list {{
    flex-direction: column;
    gap: 0.5rem;
  }}
}}
"""


def fallback_proposal(instruction: str, palette: Optional[ColorPalette] = None) -> DesignProposal:
    """Minimal proposal parameterized by the instruction's keywords."""
    title = truncate_title(instruction)
    keywords = extract_keywords(instruction)
    return DesignProposal(
        id=generate_unique_id("design-proposal"),
        title=title,
        description=f"Propuesta generada como respaldo basada en la instrucción: {instruction}",
        style="modern",
        color_palette=palette.to_proposal_colors() if palette else dict(DEFAULT_COLORS),
        typography=dict(DEFAULT_TYPOGRAPHY),
        components=fallback_components(),
        layout={"responsive": True, "keywords": keywords},
        html_preview=fallback_html(title, instruction, keywords),
        css_preview=site_css(title, palette),
        is_fallback=True,
    )


_DEFAULT_CONTENT = {
    "html": "<!DOCTYPE html>\n<html lang=\"es\">\n<head>\n    <meta charset=\"UTF-8\">\n    <title>{title}</title>\n</head>\n<body>\n</body>\n</html>\n",
    "css": "/* {title} */\n",
    "javascript": "// {title}\n",
    "typescript": "// {title}\nexport {{}};\n",
    "python": "\"\"\"{title}.\"\"\"\n",
    "markdown": "# {title}\n",
    "json": "{{}}\n",
}


def default_file_content(language: str, description: str) -> str:
    template = _DEFAULT_CONTENT.get(language, "{title}\n")
    return template.format(title=description or "Archivo generado")


__all__ = [
    "TITLE_LIMIT",
    "DEFAULT_TYPOGRAPHY",
    "DEFAULT_COLORS",
    "truncate_title",
    "extract_keywords",
    "fallback_components",
    "fallback_html",
    "site_css",
    "fallback_proposal",
    "default_file_content",
]
