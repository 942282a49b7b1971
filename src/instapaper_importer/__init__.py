"""
Пакет instapaper_importer
Массовый импорт статей из CSV в Instapaper через прокси с xAuth.
"""

__version__ = "0.1.0"
