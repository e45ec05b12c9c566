"""
Utilities package for the Resource Allocation Graph Simulator.
Contains configuration, logging, scenario loading and the external process feed adapter.
"""
