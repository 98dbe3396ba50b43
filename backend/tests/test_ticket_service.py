"""
Tests unitaires pour le service des tickets.
Couverture : list/create/update/delete, limite de tickets actifs, expiration automatique.
"""

import logging
from datetime import timedelta
from unittest.mock import patch

import pytest

from ticketboard.database import utcnow
from ticketboard.exceptions import AuthorizationError, NotFoundError, TicketLimitError, ValidationError
from ticketboard.models.room import Room
from ticketboard.models.ticket import Ticket
from ticketboard.schemas.ticket import TicketCreate, TicketUpdate
from ticketboard.services.ticket_service import (
    create_ticket,
    delete_ticket,
    list_tickets,
    sweep_expired_tickets,
    update_ticket,
)


# --- Helpers ---

@pytest.fixture
def room(db):
    room = Room(code="ABCDE", admin_id="admin", created_at=utcnow(), last_activity=None)
    db.add(room)
    db.commit()
    return room


def add_ticket(db, ticket_id, age, etat="en cours", room_code="ABCDE", user_id="u1", now=None):
    now = now or utcnow()
    ticket = Ticket(
        id=ticket_id,
        nom=f"ticket {ticket_id}",
        description="",
        couleur="#cdcdcd",
        etat=etat,
        date_creation=now - age,
        user_id=user_id,
        room_code=room_code,
    )
    db.add(ticket)
    db.commit()
    return ticket


# ----------------------------------------------------------------
# create_ticket
# ----------------------------------------------------------------

class TestCreateTicket:
    def test_valeurs_par_defaut(self, db, bus, room):
        ticket = create_ticket(db, bus, TicketCreate(nom="t1", user_id="u1", room_code="ABCDE"))

        assert ticket.nom == "t1"
        assert ticket.description == ""
        assert ticket.couleur == "#cdcdcd"
        assert ticket.etat == "en cours"
        assert ticket.user_id == "u1"
        assert ticket.id

    def test_touche_activite_et_notifie(self, db, bus, room):
        create_ticket(db, bus, TicketCreate(nom="t1", user_id="u1", room_code="ABCDE"))

        db.refresh(room)
        assert room.last_activity is not None
        assert bus.events == [("ABCDE", "update", None)]

    @pytest.mark.parametrize("missing", ["nom", "user_id", "room_code"])
    def test_champ_obligatoire_manquant(self, db, bus, room, missing):
        fields = {"nom": "t1", "user_id": "u1", "room_code": "ABCDE"}
        fields[missing] = None
        with pytest.raises(ValidationError):
            create_ticket(db, bus, TicketCreate(**fields))
        assert bus.events == []

    def test_salle_introuvable(self, db, bus):
        with pytest.raises(NotFoundError):
            create_ticket(db, bus, TicketCreate(nom="t1", user_id="u1", room_code="ZZZZZ"))

    def test_limite_tickets_en_cours(self, db, bus, room):
        create_ticket(db, bus, TicketCreate(nom="t1", user_id="u1", room_code="ABCDE"))

        with pytest.raises(TicketLimitError):
            create_ticket(db, bus, TicketCreate(nom="t2", user_id="u1", room_code="ABCDE"))

    def test_limite_ne_compte_que_les_tickets_en_cours(self, db, bus, room):
        add_ticket(db, "old", timedelta(minutes=5), etat="terminé")
        ticket = create_ticket(db, bus, TicketCreate(nom="t2", user_id="u1", room_code="ABCDE"))
        assert ticket.etat == "en cours"

    def test_admin_non_limite(self, db, bus, room):
        for i in range(3):
            create_ticket(db, bus, TicketCreate(nom=f"t{i}", user_id="admin", room_code="ABCDE"))
        assert len(list_tickets(db, "ABCDE")) == 3


def test_list_tickets_ordre_decroissant(db, room):
    add_ticket(db, "a", timedelta(minutes=30))
    add_ticket(db, "b", timedelta(minutes=10))
    add_ticket(db, "c", timedelta(minutes=20))
    add_ticket(db, "autre", timedelta(minutes=1), room_code="OTHER")

    assert [t.id for t in list_tickets(db, "ABCDE")] == ["b", "c", "a"]


# ----------------------------------------------------------------
# update_ticket
# ----------------------------------------------------------------

class TestUpdateTicket:
    def test_mise_a_jour_partielle(self, db, bus, room):
        add_ticket(db, "t", timedelta(minutes=1))

        echo = update_ticket(db, bus, "t", TicketUpdate(description="x"))

        assert echo == {"id": "t", "description": "x"}
        db.expire_all()
        ticket = db.get(Ticket, "t")
        assert ticket.description == "x"
        assert ticket.nom == "ticket t"
        assert ticket.couleur == "#cdcdcd"
        assert ticket.etat == "en cours"

    def test_sans_room_code_pas_de_notification(self, db, bus, room):
        add_ticket(db, "t", timedelta(minutes=1))
        update_ticket(db, bus, "t", TicketUpdate(etat="terminé"))
        assert bus.events == []

    def test_avec_room_code_notifie(self, db, bus, room):
        add_ticket(db, "t", timedelta(minutes=1))

        echo = update_ticket(db, bus, "t", TicketUpdate(etat="terminé", room_code="ABCDE"))

        assert echo == {"id": "t", "etat": "terminé", "roomCode": "ABCDE"}
        assert bus.events == [("ABCDE", "update", None)]
        db.expire_all()
        assert db.get(Ticket, "t").etat == "terminé"

    def test_nom_vide_ignore(self, db, bus, room):
        add_ticket(db, "t", timedelta(minutes=1))
        update_ticket(db, bus, "t", TicketUpdate(nom="", couleur="#ff0000"))
        db.expire_all()
        ticket = db.get(Ticket, "t")
        assert ticket.nom == "ticket t"
        assert ticket.couleur == "#ff0000"

    def test_ticket_inexistant_succes_silencieux(self, db, bus, room):
        # Choix assumé : un id inconnu ne lève pas NotFoundError, l'écho est renvoyé
        echo = update_ticket(db, bus, "inconnu", TicketUpdate(nom="x"))
        assert echo == {"id": "inconnu", "nom": "x"}
        assert db.get(Ticket, "inconnu") is None


# ----------------------------------------------------------------
# delete_ticket
# ----------------------------------------------------------------

class TestDeleteTicket:
    def test_proprietaire_supprime(self, db, bus, room):
        add_ticket(db, "t", timedelta(minutes=1), user_id="u1")
        delete_ticket(db, bus, "t", "u1")
        assert db.get(Ticket, "t") is None
        assert bus.events == [("ABCDE", "update", None)]

    def test_admin_supprime(self, db, bus, room):
        add_ticket(db, "t", timedelta(minutes=1), user_id="u1")
        delete_ticket(db, bus, "t", "admin")
        assert db.get(Ticket, "t") is None

    def test_tiers_refuse_ticket_inchange(self, db, bus, room):
        add_ticket(db, "t", timedelta(minutes=1), user_id="u1")

        with pytest.raises(AuthorizationError):
            delete_ticket(db, bus, "t", "u2")

        db.expire_all()
        ticket = db.get(Ticket, "t")
        assert ticket is not None
        assert ticket.nom == "ticket t"
        assert bus.events == []

    def test_sans_user_id_refuse(self, db, bus, room):
        add_ticket(db, "t", timedelta(minutes=1))
        with pytest.raises(AuthorizationError):
            delete_ticket(db, bus, "t", None)

    def test_ticket_introuvable(self, db, bus, room):
        with pytest.raises(NotFoundError):
            delete_ticket(db, bus, "inconnu", "u1")


# ----------------------------------------------------------------
# sweep_expired_tickets
# ----------------------------------------------------------------

class TestSweepExpiredTickets:
    def test_en_cours_survit_une_seconde_avant_3h10(self, db, bus, room):
        now = utcnow()
        add_ticket(db, "t", timedelta(hours=3, minutes=10) - timedelta(seconds=1), now=now)

        assert sweep_expired_tickets(db, bus, now=now) == 0
        assert db.get(Ticket, "t") is not None

    def test_en_cours_supprime_une_seconde_apres_3h10(self, db, bus, room):
        now = utcnow()
        add_ticket(db, "t", timedelta(hours=3, minutes=10) + timedelta(seconds=1), now=now)

        assert sweep_expired_tickets(db, bus, now=now) == 1
        assert db.get(Ticket, "t") is None

    def test_termine_survit_une_seconde_avant_1h(self, db, bus, room):
        now = utcnow()
        add_ticket(db, "t", timedelta(hours=1) - timedelta(seconds=1), etat="terminé", now=now)

        assert sweep_expired_tickets(db, bus, now=now) == 0

    def test_termine_supprime_une_seconde_apres_1h(self, db, bus, room):
        now = utcnow()
        add_ticket(db, "t", timedelta(hours=1) + timedelta(seconds=1), etat="terminé", now=now)

        assert sweep_expired_tickets(db, bus, now=now) == 1

    def test_etat_terminal_libre_suit_le_seuil_1h(self, db, bus, room):
        now = utcnow()
        add_ticket(db, "t", timedelta(hours=2), etat="annulé", now=now)
        assert sweep_expired_tickets(db, bus, now=now) == 1

    def test_une_notification_par_salle(self, db, bus, room):
        db.add(Room(code="OTHER", admin_id="x", created_at=utcnow()))
        db.commit()
        now = utcnow()
        add_ticket(db, "a", timedelta(hours=4), now=now)
        add_ticket(db, "b", timedelta(hours=5), now=now)
        add_ticket(db, "c", timedelta(hours=2), etat="terminé", room_code="OTHER", now=now)
        add_ticket(db, "d", timedelta(minutes=5), now=now)

        assert sweep_expired_tickets(db, bus, now=now) == 3
        assert sorted(bus.events) == [("ABCDE", "update", None), ("OTHER", "update", None)]
        assert [t.id for t in list_tickets(db, "ABCDE")] == ["d"]

    def test_rien_a_supprimer_aucune_notification(self, db, bus, room):
        add_ticket(db, "t", timedelta(minutes=5))
        assert sweep_expired_tickets(db, bus) == 0
        assert bus.events == []

    def test_erreur_sur_un_ticket_n_interrompt_pas_le_lot(self, db, bus, room, caplog):
        now = utcnow()
        add_ticket(db, "a", timedelta(hours=5), now=now)
        add_ticket(db, "b", timedelta(hours=5), now=now)

        real_delete = db.delete
        calls = []

        def flaky_delete(instance):
            calls.append(instance.id)
            if len(calls) == 1:
                raise RuntimeError("verrou en base")
            return real_delete(instance)

        with caplog.at_level(logging.ERROR, logger="ticketboard.services.ticket_service"):
            with patch.object(db, "delete", side_effect=flaky_delete):
                deleted = sweep_expired_tickets(db, bus, now=now)

        assert deleted == 1
        assert [t.id for t in list_tickets(db, "ABCDE")] == [calls[0]]
        assert bus.events == [("ABCDE", "update", None)]
        assert f"ticket expiré {calls[0]}" in caplog.text
