import os
import sys

sys.path.insert(0, os.path.abspath(".."))

project = "Agent Engine"
copyright = "2025, Agent Engine contributors"
author = "Agent Engine contributors"
release = "1.0.0"

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.napoleon",
    "sphinx.ext.viewcode",
    "myst_parser",
]

source_suffix = {".md": "markdown"}
root_doc = "index"
myst_enable_extensions = ["colon_fence"]

exclude_patterns = ["_build"]

html_theme = "sphinx_rtd_theme"
html_title = "Agent Engine"

autodoc_typehints = "description"
autodoc_member_order = "bysource"
autodoc_default_options = {"members": True, "show-inheritance": True}
napoleon_google_docstring = True
