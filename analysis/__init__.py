"""
Analysis package for the Resource Allocation Graph Simulator.
Contains the event history and run metrics.
"""
