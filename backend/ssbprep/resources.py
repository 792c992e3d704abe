"""Static study material for the resource library."""

WAT_WORDS = [
	"Courage", "Team", "Leader", "Duty", "Defeat", "Help", "Friend", "Army", "Discipline", "Fear",
	"Mother", "Success", "Risk", "Country", "Sacrifice", "Failure", "Honest", "Attack", "Peace", "Work",
	"Brave", "Nation", "Lonely", "Trust", "Game", "Danger", "Love", "Decision", "Struggle", "Victory",
	"Cooperate", "Enemy", "Respect", "Problem", "Goal", "Uniform", "Night", "Mountain", "Father", "Time",
	"Weak", "Society", "Initiative", "Punish", "Hope", "Challenge", "Dream", "Accident", "Life", "Loyal",
]

GD_TOPICS = [
	{"title": "Impact of Social Media on Youth", "category": "Social"},
	{"title": "Agnipath Scheme: Pros & Cons", "category": "Defense"},
	{"title": "India's Role in Global Geopolitics", "category": "International"},
	{"title": "Electric Vehicles: Future of Transport", "category": "Technology"},
	{"title": "Women Empowerment in India", "category": "Social"},
	{"title": "Artificial Intelligence: Boon or Bane", "category": "Tech"},
	{"title": "One Nation One Election", "category": "Political"},
	{"title": "Uniform Civil Code", "category": "Legal"},
	{"title": "Privatization of PSUs", "category": "Economy"},
	{"title": "India-China Relations", "category": "International"},
]

INTERVIEW_QUESTIONS = [
	{
		"category": "CIQ 1 (Education & Family)",
		"questions": [
			"Tell me about your academic performance starting from 10th class till now.",
			"Who is your favorite teacher and why? Who did you not like?",
			"Tell me about your family members and your relationship with them.",
			"How do you spend time with your parents?",
		],
	},
	{
		"category": "CIQ 2 (Friends & Hobbies)",
		"questions": [
			"Who are your best friends and why? What qualities do you like in them?",
			"How do you spend your spare time?",
			"What are your hobbies and interests?",
			"Tell me about your daily routine.",
		],
	},
	{
		"category": "Service Knowledge",
		"questions": [
			"Why do you want to join the Defense Forces?",
			"Which regiment/branch do you want to join and why?",
			"What is the rank structure of the Army/Navy/Air Force?",
			"Tell me about the recent modernization in Indian Armed Forces.",
		],
	},
	{
		"category": "Self Awareness",
		"questions": [
			"What are your strengths and weaknesses?",
			"Tell me about a time you showed leadership.",
			"What is your backup plan if you don't get selected?",
			"What improvements have you made since your last attempt? (For Repeaters)",
		],
	},
]


def wat_entries(limit: int = 50):
	# Sample sentence only shows the shape of a positive response
	return [
		{"word": w, "response": f"A meaningful sentence demonstrating OLQ for '{w}'. e.g., {w} helps in overcoming obstacles."}
		for w in WAT_WORDS[:limit]
	]
