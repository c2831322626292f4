from __future__ import annotations

from pathlib import Path
from typing import List

from microplastic_app.engine.errors import UnsupportedFileTypeError
from microplastic_app.engine.plugin_api import IngestionPlugin
from microplastic_app.plugins.csv.plugin import CsvPlugin
from microplastic_app.plugins.image.plugin import ImagePlugin


def available_plugins() -> List[IngestionPlugin]:
    return [CsvPlugin(), ImagePlugin()]


def plugin_for_path(path: str | Path) -> IngestionPlugin:
    for plugin in available_plugins():
        if plugin.detect([str(path)]):
            return plugin
    supported = [ext for plugin in available_plugins() for ext in plugin.extensions]
    raise UnsupportedFileTypeError(str(path), supported)
