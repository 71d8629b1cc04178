import os
import sys
from pathlib import Path

from PyQt6.QtWidgets import QApplication

from yidsgui.gui import RomEditorGUI
from yidsrom.logging_config import setup_logging
from yidsrom.settings import load_settings


def main():
    settings = load_settings(Path(os.environ.get('YIDSROM_SETTINGS', 'yidsrom.json')))
    setup_logging(Path.home() / '.yidsrom' / 'logs', settings.log_level)
    app = QApplication(sys.argv)
    window = RomEditorGUI(settings)
    window.show()
    if len(sys.argv) > 1:
        window.open_rom(Path(sys.argv[1]))
    sys.exit(app.exec())


if __name__ == '__main__':
    main()
