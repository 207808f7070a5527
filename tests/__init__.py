"""
Test Suite Initialization

ragengine test package.
"""
