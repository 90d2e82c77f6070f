"""
wellsim, wellbore trip, circulation and ream simulation.

Package Structure:
    geometry/   - Survey and wellbore section geometry
    fluids/     - Fluid layer stacks and the mud catalog
    flow/       - Back pressure solve, swab/surge and APL models
    engine/     - Step engines for each operation kind
    assembly/   - Operation sequencing, timeline and presets
    utils/      - Error types
"""
