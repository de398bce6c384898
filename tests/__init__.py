"""Test suite for the iron supplementation meta-analysis toolkit.

Run ``pytest`` from the project root.
"""
