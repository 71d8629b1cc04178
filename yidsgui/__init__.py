from yidsgui.gui import RomEditorGUI
from yidsgui.mapselector import MapSelector, MapEntry
__all__ = ['RomEditorGUI', 'MapSelector', 'MapEntry']
