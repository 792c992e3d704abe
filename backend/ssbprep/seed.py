from __future__ import annotations
import json
import logging
from sqlalchemy.orm import Session

from .models import GPEScenario, OIRQuestion, OIRSet, PPDTScenario

logger = logging.getLogger(__name__)


FREE_GPE_NARRATIVE = (
	"You are a group of six college students on a trekking trip near the village of Rampur, "
	"situated on the bank of a river in a hilly region. It is 10:00 AM. While resting near "
	"the village you learn that: (a) a bus carrying 30 passengers has met with an accident on the "
	"hill road 8 km away and several people are injured; (b) a group of miscreants has been seen "
	"planning to blow up the railway bridge at 1:30 PM, when the express train is due; (c) a child "
	"from the village has fallen into a dry well near the temple and is crying for help. "
	"Resources: one jeep with a driver (available at the village), two bicycles, a telephone at the "
	"post office 3 km away, ropes and a first-aid box with your group. The police station is 15 km "
	"away and the nearest hospital is in the town 20 km away. Plan how your group will handle all "
	"three problems."
)

MINE_GPE_NARRATIVE = (
	"Your group of five NCC cadets is camping near a coal mining town. At 4:00 PM an explosion "
	"traps eight miners in a shaft; a forest fire is approaching the camp from the north; and the "
	"only road to the district hospital is blocked by a landslide 6 km away. You have a tractor, "
	"a wireless set with limited battery, spades, ropes and two motorcycles. Plan your actions."
)

SCREENING_OIR = [
	(
		"Screening OIR 1 - Verbal",
		[
			("Which number comes next: 2, 6, 12, 20, 30, ?", ["40", "42", "44", "36"], 1),
			("BOOK is to READ as FORK is to ?", ["Kitchen", "Eat", "Spoon", "Metal"], 1),
			("If CAT is coded as DBU, how is DOG coded?", ["EPH", "EPG", "DPH", "FQI"], 0),
			("Find the odd one out.", ["Rifle", "Pistol", "Carbine", "Helmet"], 3),
			("A is the brother of B, B is the sister of C. How is A related to C?", ["Brother", "Sister", "Cousin", "Cannot be determined"], 0),
		],
	),
	(
		"Screening OIR 1 - Non-Verbal",
		[
			("Which number comes next: 3, 9, 27, 81, ?", ["162", "243", "324", "108"], 1),
			("Choose the word most opposite to BRAVE.", ["Bold", "Timid", "Strong", "Calm"], 1),
			("If 5 men dig a trench in 10 days, 10 men dig it in ?", ["20 days", "5 days", "10 days", "2 days"], 1),
			("Find the odd one out.", ["Army", "Navy", "Air Force", "Police"], 3),
			("Which letter comes next: A, C, F, J, ?", ["N", "O", "M", "P"], 1),
		],
	),
]


def _seed_oir(db: Session, title: str, questions) -> None:
	oir_set = OIRSet(title=title, time_limit_seconds=900)
	db.add(oir_set)
	db.flush()
	for text, options, correct in questions:
		db.add(OIRQuestion(set_id=oir_set.id, text=text, options=json.dumps(options), correct_index=correct))


def seed_catalog(db: Session) -> bool:
	"""Insert starter content into an empty catalog. Returns True if anything was added."""
	added = False
	if db.query(GPEScenario).count() == 0:
		db.add(GPEScenario(title="Free Practice GPE", narrative=FREE_GPE_NARRATIVE, difficulty="Easy"))
		db.add(GPEScenario(title="Coal Mine Crisis", narrative=MINE_GPE_NARRATIVE, difficulty="Hard"))
		added = True
	if db.query(OIRSet).count() == 0:
		for title, questions in SCREENING_OIR:
			_seed_oir(db, title, questions)
		added = True
	if db.query(PPDTScenario).count() == 0:
		db.add(PPDTScenario(description="Screening 1: a group of young men near a jeep discussing a map"))
		added = True
	if added:
		db.commit()
		logger.info("Seeded starter catalog")
	return added
