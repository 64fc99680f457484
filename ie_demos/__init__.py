"""
Inference Engine Demos - Main Package

Demo applications and model wrappers built on OpenVINO Runtime: image
classification, Mask R-CNN instance segmentation, gaze estimation and
smart classroom face re-identification.
"""

__version__ = "0.1.0"
