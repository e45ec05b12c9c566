"""
Algorithms package for the Resource Allocation Graph Simulator.
Contains the graph reducer, deadlock detection, risk assessment and recovery implementations.
"""
