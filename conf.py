# Configuration file for the Sphinx documentation builder.
# Full config reference:
# https://www.sphinx-doc.org/en/master/usage/configuration.html

# -- Path setup --------------------------------------------------------------
# Make the project root importable so autodoc can import `promoattr`, `extraction`, etc.
import os
import sys

sys.path.insert(0, os.path.abspath("."))

# -- Project information -----------------------------------------------------
project = "PromoAttribution"
author = "PromoAttribution contributors"
copyright = "2025, PromoAttribution contributors"
release = "0.1.0"

# -- General configuration ---------------------------------------------------
extensions = [
    "sphinx.ext.autodoc",   # pull in docstrings
    "sphinx.ext.napoleon",  # allow Google/NumPy-style docstrings
    "sphinx.ext.viewcode",  # add [source] links
    "sphinx.ext.autosummary",
]
autosummary_generate = True
# The browser driver and the UI are not needed to document the engine.
autodoc_mock_imports = ["playwright", "streamlit"]

autodoc_default_options = {
    "members": True,
    "undoc-members": False,
    "show-inheritance": False,
}
autodoc_typehints = "description"
autodoc_class_signature = "separated"

napoleon_google_docstring = True
napoleon_numpy_docstring = False
napoleon_include_init_with_doc = False
napoleon_use_param = True
napoleon_use_rtype = True

templates_path = ["_templates"]
exclude_patterns = ["_build", "Thumbs.db", ".DS_Store", "tests", "data", "out"]

# -- Options for HTML output -------------------------------------------------
html_theme = "alabaster"
html_static_path = ["_static"]
html_title = f"{project} {release}"

pygments_style = "sphinx"
