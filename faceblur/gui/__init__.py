from faceblur.gui.editor import launch_gui

__all__ = ["launch_gui"]
