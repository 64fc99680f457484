"""
Test suite for the inference demos.

Unit and integration tests run against a fake inference engine that serves
scripted output tensors, so no OpenVINO runtime or model files are required.
"""
