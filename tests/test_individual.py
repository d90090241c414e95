"""Tests for donor name and address normalization."""

from giftaid.individual import HOUSE_MAX_LENGTH, NAME_MAX_LENGTH, Individual


class TestIndividual:
    def test_short_values_unchanged(self):
        person = Individual(forename="Rick", surname="Astley", house_no="1", title="Mr")
        assert person.forename == "Rick"
        assert person.surname == "Astley"
        assert person.house_no == "1"
        assert person.title == "Mr"

    def test_truncates_names(self):
        person = Individual(forename="F" * 50, surname="S" * 36)
        assert person.forename == "F" * NAME_MAX_LENGTH
        assert person.surname == "S" * NAME_MAX_LENGTH

    def test_truncates_house(self):
        person = Individual(house_no="The Old Rectory, Long Lane, Little Snoring")
        assert len(person.house_no) == HOUSE_MAX_LENGTH
        assert person.house_no == "The Old Rectory, Long Lane, Little Snori"

    def test_values_at_limit_kept(self):
        person = Individual(forename="A" * 35, house_no="B" * 40)
        assert person.forename == "A" * 35
        assert person.house_no == "B" * 40

    def test_none_becomes_empty(self):
        person = Individual(forename=None, surname=None, house_no=None)
        assert person.forename == ""
        assert person.surname == ""
        assert person.house_no == ""

    def test_overseas_indicator(self):
        assert Individual(overseas=True).overseas_indicator == "yes"
        assert Individual().overseas_indicator == "no"
