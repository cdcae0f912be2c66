"""
Quiz Bank

Built-in multiple-choice catalog (three topics, two questions per topic per
difficulty) plus a loader for alternative catalogs stored as JSON.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from levely_companion.errors import QuestionNotFoundError, QuizBankValidationError
from levely_companion.models import Difficulty, QuizQuestion

logger = logging.getLogger(__name__)


def _question(id, topic, difficulty, prompt, choices, correct_index, explanation) -> QuizQuestion:
    return QuizQuestion(
        id=id,
        topic=topic,
        difficulty=difficulty,
        prompt=prompt,
        choices=tuple(choices),
        correct_index=correct_index,
        explanation=explanation,
    )


DEFAULT_TOPICS = ("Usability", "Heuristics", "User Research")

DEFAULT_QUESTIONS = (
    # Easy
    _question(
        "u-e-1", "Usability", Difficulty.EASY,
        "Apa definisi sederhana dari usability?",
        [
            "Seberapa cepat aplikasi berjalan",
            "Seberapa mudah dan efektif pengguna mencapai tujuan",
            "Seberapa mahal biaya pengembangan",
            "Seberapa banyak fitur yang tersedia",
        ],
        1,
        "Usability fokus pada kemudahan, efektivitas, efisiensi, dan kepuasan pengguna saat mencapai tujuan.",
    ),
    _question(
        "u-e-2", "Usability", Difficulty.EASY,
        "Contoh masalah usability yang paling tepat adalah…",
        [
            "Warna brand tidak sesuai",
            "Tombol “Submit” sulit ditemukan sehingga pengguna gagal menyelesaikan form",
            "Server down",
            "Harga langganan terlalu tinggi",
        ],
        1,
        "Masalah usability muncul saat pengguna kesulitan menyelesaikan tugas/tujuan dalam UI.",
    ),
    _question(
        "h-e-1", "Heuristics", Difficulty.EASY,
        "Heuristic evaluation biasanya dilakukan oleh…",
        [
            "Pengguna akhir dalam jumlah besar",
            "Seorang evaluator/ahli UX menggunakan daftar heuristik",
            "Hanya oleh developer",
            "Dengan A/B testing otomatis",
        ],
        1,
        "Heuristic evaluation dilakukan evaluator (biasanya ahli) dengan acuan heuristik (mis. Nielsen).",
    ),
    _question(
        "h-e-2", "Heuristics", Difficulty.EASY,
        "Heuristik “Visibility of system status” berarti…",
        [
            "Aplikasi harus selalu online",
            "Sistem memberi feedback yang jelas tentang apa yang sedang terjadi",
            "Tampilan harus banyak animasi",
            "Sistem harus menyembunyikan informasi",
        ],
        1,
        "Sistem perlu memberi status/progress supaya pengguna tidak bingung (loading, sukses, gagal).",
    ),
    _question(
        "r-e-1", "User Research", Difficulty.EASY,
        "Tujuan utama user research adalah…",
        [
            "Membuktikan ide kita benar",
            "Memahami kebutuhan, konteks, dan perilaku pengguna",
            "Menambah jumlah fitur",
            "Membuat desain terlihat modern",
        ],
        1,
        "User research membantu memahami pengguna agar solusi lebih tepat sasaran.",
    ),
    _question(
        "r-e-2", "User Research", Difficulty.EASY,
        "Metode yang termasuk user research kualitatif adalah…",
        [
            "Wawancara pengguna",
            "Menghitung jumlah klik saja",
            "Mengukur FPS aplikasi",
            "Membaca log error",
        ],
        0,
        "Wawancara menggali alasan/cerita pengguna (kualitatif).",
    ),
    # Medium
    _question(
        "u-m-1", "Usability", Difficulty.MEDIUM,
        "Jika waktu menyelesaikan tugas turun namun error meningkat, metrik usability yang paling “konflik” adalah…",
        [
            "Efisiensi vs efektivitas",
            "Learnability vs memorability",
            "Kepuasan vs aksesibilitas",
            "Brand vs estetika",
        ],
        0,
        "Lebih cepat (efisiensi) tetapi lebih banyak error (efektivitas) menunjukkan trade-off.",
    ),
    _question(
        "u-m-2", "Usability", Difficulty.MEDIUM,
        "Metrik yang paling cocok untuk mengukur “learnability” adalah…",
        [
            "Waktu yang dibutuhkan pengguna baru untuk menyelesaikan tugas pertama",
            "Jumlah server request",
            "Jumlah fitur premium",
            "Jumlah halaman di aplikasi",
        ],
        0,
        "Learnability sering diukur dari performa pengguna baru saat first-time use.",
    ),
    _question(
        "h-m-1", "Heuristics", Difficulty.MEDIUM,
        "Pesan error yang hanya berbunyi “Error 0x0001” melanggar heuristik…",
        [
            "Match between system and the real world",
            "Help users recognize, diagnose, and recover from errors",
            "Aesthetic and minimalist design",
            "Flexibility and efficiency of use",
        ],
        1,
        "Error harus membantu pengguna memahami masalah dan cara memperbaikinya.",
    ),
    _question(
        "h-m-2", "Heuristics", Difficulty.MEDIUM,
        "Skenario: user tidak sengaja menghapus file dan tidak ada undo. Ini melanggar…",
        [
            "User control and freedom",
            "Recognition rather than recall",
            "Consistency and standards",
            "Help and documentation",
        ],
        0,
        "Undo/redo memberi kontrol dan kebebasan saat pengguna melakukan tindakan tidak sengaja.",
    ),
    _question(
        "r-m-1", "User Research", Difficulty.MEDIUM,
        "Perbedaan utama survei vs wawancara adalah…",
        [
            "Survei untuk data kuantitatif skala besar; wawancara untuk insight mendalam",
            "Survei selalu lebih akurat",
            "Wawancara tidak butuh panduan",
            "Survei hanya untuk UX writer",
        ],
        0,
        "Survei cocok untuk breadth, wawancara untuk depth.",
    ),
    _question(
        "r-m-2", "User Research", Difficulty.MEDIUM,
        "Jika Anda ingin melihat perilaku nyata saat user memakai aplikasi, metode yang tepat adalah…",
        [
            "Usability testing (task-based)",
            "Hanya brainstorming internal",
            "Menebak persona",
            "Membaca review kompetitor saja",
        ],
        0,
        "Usability testing mengamati user mengerjakan tugas, termasuk kesalahan dan kebingungan.",
    ),
    # Hard
    _question(
        "u-h-1", "Usability", Difficulty.HARD,
        "Skor SUS (System Usability Scale) 68 biasanya diinterpretasikan sebagai…",
        [
            "Di bawah rata-rata (poor)",
            "Sekitar rata-rata (OK/average)",
            "Sangat tinggi (excellent)",
            "Tidak bisa diinterpretasikan",
        ],
        1,
        "SUS 68 sering dianggap sekitar rata-rata (benchmark umum).",
    ),
    _question(
        "u-h-2", "Usability", Difficulty.HARD,
        "Dalam usability testing, “think-aloud” terutama membantu mengungkap…",
        [
            "Kecepatan internet pengguna",
            "Proses mental, asumsi, dan alasan di balik tindakan user",
            "Jumlah user yang aktif",
            "Bug pada backend",
        ],
        1,
        "Think-aloud memunculkan reasoning user saat berinteraksi dengan UI.",
    ),
    _question(
        "h-h-1", "Heuristics", Difficulty.HARD,
        "Saat melakukan heuristic evaluation, praktik yang paling tepat adalah…",
        [
            "1 evaluator saja agar konsisten",
            "Beberapa evaluator independen lalu gabungkan temuan",
            "Tidak perlu severity rating",
            "Langsung redesign tanpa catat temuan",
        ],
        1,
        "Beberapa evaluator mengurangi blind spot; temuan digabungkan dan biasanya diberi severity.",
    ),
    _question(
        "h-h-2", "Heuristics", Difficulty.HARD,
        "“Recognition rather than recall” dapat diperbaiki dengan…",
        [
            "Memaksa user mengingat shortcut",
            "Menampilkan opsi/riwayat/petunjuk agar user tidak perlu mengingat",
            "Menghapus label tombol",
            "Menyembunyikan menu",
        ],
        1,
        "Kurangi beban memori: tampilkan pilihan, auto-complete, riwayat, hint, dsb.",
    ),
    _question(
        "r-h-1", "User Research", Difficulty.HARD,
        "Bias yang umum saat user research dan cara mitigasinya yang tepat adalah…",
        [
            "Confirmation bias; buat pertanyaan netral dan cari data yang berlawanan",
            "Recency bias; tanya hanya 1 user",
            "Selection bias; pilih user yang paling mirip kita",
            "Observer effect; hilangkan catatan",
        ],
        0,
        "Mitigasi bias: pertanyaan netral, triangulasi, cari counter-evidence, sampling lebih baik.",
    ),
    _question(
        "r-h-2", "User Research", Difficulty.HARD,
        "Kapan Anda lebih cocok memakai diary study?",
        [
            "Untuk memahami perilaku dan pengalaman pengguna dalam jangka waktu panjang",
            "Untuk memilih warna UI",
            "Untuk mengukur performa server",
            "Untuk debugging crash",
        ],
        0,
        "Diary study cocok untuk perilaku/aktivitas yang terjadi berulang dan kontekstual dalam waktu lama.",
    ),
)


class QuizBank:
    """Read-only lookup over a list of quiz questions."""

    REQUIRED_FIELDS = ("id", "topic", "difficulty", "prompt", "choices", "correctIndex")

    def __init__(self, questions: Optional[Iterable[QuizQuestion]] = None):
        self._questions: List[QuizQuestion] = list(DEFAULT_QUESTIONS if questions is None else questions)
        self._by_id: Dict[str, QuizQuestion] = {question.id: question for question in self._questions}

    @property
    def topics(self) -> List[str]:
        """Topics in first-seen order."""
        seen: List[str] = []
        for question in self._questions:
            if question.topic not in seen:
                seen.append(question.topic)
        return seen

    def all_questions(self) -> List[QuizQuestion]:
        return list(self._questions)

    def by(self, topic: str, difficulty: Difficulty) -> List[QuizQuestion]:
        return [q for q in self._questions if q.topic == topic and q.difficulty == difficulty]

    def by_topic(self, topic: str) -> List[QuizQuestion]:
        return [q for q in self._questions if q.topic == topic]

    def get(self, question_id: str) -> QuizQuestion:
        question = self._by_id.get(question_id)
        if question is None:
            raise QuestionNotFoundError(f"No quiz question with id {question_id!r}")
        return question

    def __len__(self) -> int:
        return len(self._questions)

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "QuizBank":
        """
        Load and validate a catalog file.

        The root must be a list of objects shaped like ``QuizQuestion.to_dict()``.

        Raises:
            FileNotFoundError: if ``path`` does not exist
            QuizBankValidationError: if any entry is malformed
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Quiz bank file not found: {path}")

        with path.open("r", encoding="utf-8") as fh:
            raw = json.load(fh)

        if not isinstance(raw, list):
            raise QuizBankValidationError("Quiz bank root must be a JSON list")

        questions = []
        seen_ids = set()
        for entry in raw:
            question = cls._validate_entry(entry)
            if question.id in seen_ids:
                raise QuizBankValidationError(f"Duplicate question id detected: {question.id}")
            seen_ids.add(question.id)
            questions.append(question)

        logger.info(f"✅ [QuizBank] Loaded {len(questions)} questions from {path}")
        return cls(questions)

    @classmethod
    def _validate_entry(cls, entry: Any) -> QuizQuestion:
        if not isinstance(entry, dict):
            raise QuizBankValidationError("Each question must be an object")

        for field_name in cls.REQUIRED_FIELDS:
            if field_name not in entry or entry[field_name] in (None, ""):
                raise QuizBankValidationError(f"Question {entry.get('id')} missing required field '{field_name}'")

        question_id = str(entry["id"])
        try:
            Difficulty(entry["difficulty"])
        except ValueError as exc:
            raise QuizBankValidationError(
                f"Question {question_id} has unknown difficulty {entry['difficulty']!r}"
            ) from exc

        choices = entry["choices"]
        if not isinstance(choices, list) or len(choices) < 2:
            raise QuizBankValidationError(f"Question {question_id} needs at least two choices")

        try:
            correct_index = int(entry["correctIndex"])
        except (TypeError, ValueError) as exc:
            raise QuizBankValidationError(f"Question {question_id} correctIndex must be an integer") from exc
        if not 0 <= correct_index < len(choices):
            raise QuizBankValidationError(f"Question {question_id} correctIndex {correct_index} is out of range")

        return QuizQuestion.from_dict(entry)
