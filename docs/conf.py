# Sphinx: documentação da Retaguarda (referência de serviços, modelos e API).
#
# https://www.sphinx-doc.org/en/master/usage/configuration.html

import os
import sys

sys.path.insert(0, os.path.abspath(".."))

# autodoc importa os modelos: precisa do Django configurado
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "example.project.settings")
import django

django.setup()

from retaguarda import __version__

# -- Projeto -----------------------------------------------------------------

project = "Retaguarda"
copyright = "2025, Retaguarda Contributors"
author = "Retaguarda Contributors"
release = __version__
version = ".".join(__version__.split(".")[:2])
language = "pt_BR"

# -- Geral -------------------------------------------------------------------

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.napoleon",
    "sphinx.ext.intersphinx",
    "sphinx.ext.viewcode",
    "sphinx_copybutton",
    "sphinxcontrib.httpdomain",     # endpoints REST
]

exclude_patterns = ["_build", "*.md"]
master_doc = "index"

# -- HTML --------------------------------------------------------------------

html_theme = "furo"
html_title = "Retaguarda"
html_theme_options = {
    "navigation_with_keys": True,
    "source_repository": "https://github.com/your-org/django-retaguarda",
    "source_branch": "main",
    "source_directory": "docs/",
}

# -- autodoc / napoleon ------------------------------------------------------

autodoc_default_options = {
    "members": True,
    "show-inheritance": True,
    "member-order": "bysource",
}
autodoc_typehints = "description"

# Docstrings em estilo Google (Args/Returns/Raises)
napoleon_google_docstring = True
napoleon_numpy_docstring = False
napoleon_use_rtype = False

intersphinx_mapping = {
    "python": ("https://docs.python.org/3", None),
    "django": (
        "https://docs.djangoproject.com/en/5.1/",
        "https://docs.djangoproject.com/en/5.1/objects.inv",
    ),
}
