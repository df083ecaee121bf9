"""Campus reference enumerations shared by profiles and alerts."""
from enum import Enum


class CampusLocation(str, Enum):
    ACADEMIC_CAMPUS = "Academic Campus"
    DISCOVERY_PARK = "Discovery Park"
    AIRPORT = "Purdue Airport"
    RESEARCH_PARK = "Purdue Research Park"
    WEST_LAFAYETTE = "West Lafayette Campus"


class Residence(str, Enum):
    CARY_QUADRANGLE = "Cary Quadrangle"
    EARHART_HALL = "Earhart Hall"
    FIRST_STREET_TOWERS = "First Street Towers"
    HARRISON_HALL = "Harrison Hall"
    HAWKINS_HALL = "Hawkins Hall"
    HILLENBRAND_HALL = "Hillenbrand Hall"
    HILLTOP_APARTMENTS = "Hilltop Apartments"
    MEREDITH_HALL = "Meredith Hall"
    OWEN_HALL = "Owen Hall"
    PURDUE_VILLAGE = "Purdue Village"
    SHREVE_HALL = "Shreve Hall"
    TARKINGTON_HALL = "Tarkington Hall"
    WILEY_HALL = "Wiley Hall"
    WINDSOR_HALL = "Windsor Hall"
    OFF_CAMPUS = "Off-Campus Housing"
